"""Append-only store of frames captured during live analysis."""

import logging
import threading
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from kyudo.pose.base import LandmarkSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedFrame:
    """
    One detected frame kept for replay.

    Attributes:
        index: Sequence index assigned by the buffer (0, 1, 2, ...).
        timestamp_ms: Video time of the frame in milliseconds.
        landmarks: Landmarks as received from the detector.
    """
    index: int
    timestamp_ms: float
    landmarks: LandmarkSet


class CaptureBuffer:
    """
    Ordered, append-only frame store.

    There is a single writer (the analysis loop) and any number of readers.
    A record is fully built before it is published, and the lock keeps
    readers from seeing the list mid-update.
    """

    def __init__(self):
        self._frames: List[CapturedFrame] = []
        self._lock = threading.Lock()

    def append(self, landmarks: LandmarkSet, timestamp_ms: float) -> CapturedFrame:
        """
        Store a frame under the next index.

        Args:
            landmarks: Detected landmarks for the frame.
            timestamp_ms: Video time of the frame in milliseconds.

        Returns:
            The stored CapturedFrame.
        """
        with self._lock:
            timestamp_ms = float(timestamp_ms)
            if self._frames and timestamp_ms < self._frames[-1].timestamp_ms:
                logger.warning(
                    f"Timestamp {timestamp_ms:.1f}ms is earlier than the previous frame "
                    f"({self._frames[-1].timestamp_ms:.1f}ms), clamping"
                )
                timestamp_ms = self._frames[-1].timestamp_ms

            frame = CapturedFrame(
                index=len(self._frames),
                timestamp_ms=timestamp_ms,
                landmarks=landmarks,
            )
            self._frames.append(frame)
            return frame

    def get(self, index: int) -> CapturedFrame:
        """
        Get a frame by index.

        Raises:
            IndexError: If the index is outside [0, size()).
        """
        with self._lock:
            if index < 0 or index >= len(self._frames):
                raise IndexError(
                    f"Frame index {index} out of range (buffer holds {len(self._frames)} frames)"
                )
            return self._frames[index]

    def size(self) -> int:
        """Number of stored frames."""
        with self._lock:
            return len(self._frames)

    def frames(self) -> Tuple[CapturedFrame, ...]:
        """Snapshot of all stored frames."""
        with self._lock:
            return tuple(self._frames)

    def reset(self) -> None:
        """Discard every stored frame (new video load)."""
        with self._lock:
            count = len(self._frames)
            self._frames = []
        logger.debug(f"Capture buffer reset ({count} frames discarded)")

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[CapturedFrame]:
        return iter(self.frames())
