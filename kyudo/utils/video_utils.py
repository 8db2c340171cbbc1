"""OpenCV video access for analysis (sequential decode) and replay (seek by time)."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np
from tqdm import tqdm

logger = logging.getLogger(__name__)

# Used when a container does not report its frame size
FALLBACK_SIZE = (640, 360)
FALLBACK_FPS = 30.0

Frame = Tuple[int, float, np.ndarray]


@dataclass(frozen=True)
class VideoInfo:
    """
    Video metadata.

    Attributes:
        path: Path to the video file.
        width: Frame width in pixels.
        height: Frame height in pixels.
        fps: Frame rate reported by the container (0 if unknown).
        total_frames: Frame count reported by the container.
        duration_seconds: total_frames / fps.
    """
    path: str
    width: int
    height: int
    fps: float
    total_frames: int
    duration_seconds: float

    @classmethod
    def from_capture(cls, cap: "cv2.VideoCapture", path: str) -> "VideoInfo":
        """Read metadata from an opened capture."""
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or FALLBACK_SIZE[0]
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or FALLBACK_SIZE[1]
        fps = float(cap.get(cv2.CAP_PROP_FPS) or 0.0)
        total_frames = max(0, int(cap.get(cv2.CAP_PROP_FRAME_COUNT)))
        return cls(
            path=path,
            width=width,
            height=height,
            fps=fps,
            total_frames=total_frames,
            duration_seconds=total_frames / fps if fps > 0 else 0.0,
        )

    @property
    def frame_interval_ms(self) -> float:
        """Nominal time between frames."""
        return 1000.0 / (self.fps if self.fps > 0 else FALLBACK_FPS)


def get_video_info(video_path: str) -> Optional[VideoInfo]:
    """
    Read the metadata of a video file.

    Returns:
        VideoInfo, or None if OpenCV cannot open the file.
    """
    cap = cv2.VideoCapture(str(video_path))
    try:
        if not cap.isOpened():
            logger.error(f"Could not open video: {video_path}")
            return None
        return VideoInfo.from_capture(cap, str(video_path))
    finally:
        cap.release()


class VideoProcessor:
    """
    Video element for one analysis session.

    During analysis the frames are decoded in order together with their
    video timestamps. During replay the element is repositioned with
    `seek` and the decoded image is read back with `current_frame`.
    """

    def __init__(self, video_path: str):
        self.video_path = Path(video_path)
        self._cap: Optional[cv2.VideoCapture] = None
        self._info: Optional[VideoInfo] = None
        self._current: Optional[np.ndarray] = None

    @property
    def info(self) -> Optional[VideoInfo]:
        """Metadata, or None if the file cannot be opened."""
        if self._info is None:
            self._info = get_video_info(str(self.video_path))
        return self._info

    def open(self) -> None:
        """
        Open the capture if needed.

        Raises:
            ValueError: If OpenCV cannot open the file.
        """
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(str(self.video_path))
        if not cap.isOpened():
            raise ValueError(f"Could not open video: {self.video_path}")
        self._cap = cap
        logger.debug(f"Opened video: {self.video_path}")

    def close(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        self._current = None
        logger.debug(f"Closed video: {self.video_path}")

    def _decode(self) -> Optional[np.ndarray]:
        ok, image = self._cap.read()
        self._current = image if ok else None
        return self._current

    def iterate_frames(self, show_progress: bool = True) -> Iterator[Frame]:
        """
        Decode every frame from the beginning.

        Timestamps come from the container; where it reports none
        (some codecs return 0 for every frame) they are derived from the
        frame number and the frame rate.

        Args:
            show_progress: Show a tqdm progress bar.

        Yields:
            (frame_number, timestamp_ms, image) tuples.
        """
        self.open()
        self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0)

        info = self.info
        interval_ms = info.frame_interval_ms if info else 1000.0 / FALLBACK_FPS
        progress = tqdm(total=info.total_frames if info else None, desc="Analyzing video",
                        unit="frame", disable=not show_progress)

        frame_number = 0
        try:
            while True:
                image = self._decode()
                if image is None:
                    break

                timestamp_ms = self._cap.get(cv2.CAP_PROP_POS_MSEC)
                if timestamp_ms <= 0 and frame_number > 0:
                    timestamp_ms = frame_number * interval_ms

                yield frame_number, timestamp_ms, image
                progress.update(1)
                frame_number += 1
        finally:
            progress.close()

        logger.debug(f"Decoded {frame_number} frames from {self.video_path.name}")

    def seek(self, timestamp_ms: float) -> None:
        """
        Reposition to a video time and decode the frame shown there.

        Raises:
            ValueError: If the file cannot be opened or nothing decodes at
                that time.
        """
        self.open()
        self._cap.set(cv2.CAP_PROP_POS_MSEC, max(0.0, float(timestamp_ms)))
        if self._decode() is None:
            raise ValueError(f"No frame at {timestamp_ms:.0f}ms in {self.video_path.name}")

    def current_frame(self) -> Optional[np.ndarray]:
        """Image decoded by the last read or seek."""
        return self._current

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class VideoWriter:
    """
    Writes a rendered replay to a video file.

    Frames that do not match the output size are resized.

    Example:
        with VideoWriter("replay.mp4", fps=30, size=(640, 360)) as writer:
            writer.write(surface)
    """

    def __init__(
        self,
        output_path: str,
        fps: float = FALLBACK_FPS,
        size: Tuple[int, int] = FALLBACK_SIZE,
        codec: str = "mp4v",
    ):
        """
        Args:
            output_path: Output file path.
            fps: Output frame rate.
            size: (width, height) of the output.
            codec: FourCC code.
        """
        self.output_path = Path(output_path)
        self.fps = fps
        self.size = size
        self.codec = codec
        self.frames_written = 0
        self._writer: Optional[cv2.VideoWriter] = None

    def open(self) -> None:
        if self._writer is not None:
            return
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        writer = cv2.VideoWriter(
            str(self.output_path), cv2.VideoWriter_fourcc(*self.codec), self.fps, self.size
        )
        if not writer.isOpened():
            raise ValueError(f"Could not open video writer for {self.output_path} ({self.codec})")
        self._writer = writer

    def write(self, frame: np.ndarray) -> None:
        self.open()
        width, height = self.size
        if frame.shape[:2] != (height, width):
            frame = cv2.resize(frame, (width, height))
        self._writer.write(frame)
        self.frames_written += 1

    def close(self) -> None:
        if self._writer is None:
            return
        self._writer.release()
        self._writer = None
        logger.info(f"Wrote {self.frames_written} frames to {self.output_path}")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
