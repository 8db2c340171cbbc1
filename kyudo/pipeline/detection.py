"""Single-flight gate around the pose detector."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional

import numpy as np

from kyudo.pose.base import LandmarkSet, PoseBackend

logger = logging.getLogger(__name__)

ResultHandler = Callable[[Optional[LandmarkSet], int, float], None]


class DetectionGate:
    """
    Runs detector calls one at a time on a worker thread.

    `offer` never blocks and never queues: while a detection is still in
    flight, further frames are refused and the caller drops them. Results
    are delivered to the handler on the worker thread, which makes the
    handler the single writer for anything it updates.
    """

    def __init__(self, backend: PoseBackend, on_result: ResultHandler):
        """
        Args:
            backend: Pose detector.
            on_result: Called with (landmarks or None, frame_number,
                timestamp_ms) for every accepted frame.
        """
        self.backend = backend
        self.on_result = on_result
        self.errors = 0

        self._lock = threading.Lock()
        self._slot = threading.BoundedSemaphore(1)
        self._idle = threading.Event()
        self._idle.set()
        self._cancelled = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pose-detector")

    @property
    def busy(self) -> bool:
        """Whether a detection is in flight."""
        return not self._idle.is_set()

    def offer(self, frame: np.ndarray, frame_number: int, timestamp_ms: float) -> bool:
        """
        Submit a frame for detection if the detector is free.

        Returns:
            True if the frame was accepted, False if it was skipped.
        """
        if self._cancelled.is_set():
            return False
        with self._lock:
            if not self._slot.acquire(blocking=False):
                return False
            self._idle.clear()

        try:
            self._executor.submit(self._run, frame, frame_number, timestamp_ms)
        except RuntimeError:
            self._release()
            raise
        return True

    def _run(self, frame: np.ndarray, frame_number: int, timestamp_ms: float) -> None:
        try:
            try:
                landmarks = self.backend.detect(frame)
            except Exception as e:
                self.errors += 1
                logger.warning(f"Pose detection failed on frame {frame_number}: {e}")
                landmarks = None

            if self._cancelled.is_set():
                return
            try:
                self.on_result(landmarks, frame_number, timestamp_ms)
            except Exception:
                logger.exception(f"Detection result handler failed on frame {frame_number}")
        finally:
            self._release()

    def _release(self) -> None:
        with self._lock:
            self._slot.release()
            self._idle.set()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no detection is in flight.

        Returns:
            False if the timeout expired first.
        """
        return self._idle.wait(timeout)

    def cancel(self) -> None:
        """Refuse new frames and discard the result of the in-flight one."""
        self._cancelled.set()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
