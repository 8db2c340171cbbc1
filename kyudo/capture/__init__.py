"""Frame capture for replay."""

from kyudo.capture.buffer import CaptureBuffer, CapturedFrame

__all__ = ["CaptureBuffer", "CapturedFrame"]
