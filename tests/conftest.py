"""Shared fixtures and landmark builders for the test suite."""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np
import pytest

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from kyudo.pose.base import Landmark, LandmarkSet, PoseBackend, PoseLandmark
from kyudo.utils.video_utils import VideoInfo

# Archer facing the camera at full draw (normalized image coordinates)
DRAW_POSE: Dict[PoseLandmark, Tuple[float, float]] = {
    PoseLandmark.NOSE: (0.50, 0.20),
    PoseLandmark.LEFT_EAR: (0.54, 0.22),
    PoseLandmark.RIGHT_EAR: (0.46, 0.22),
    PoseLandmark.LEFT_SHOULDER: (0.58, 0.32),
    PoseLandmark.RIGHT_SHOULDER: (0.42, 0.32),
    PoseLandmark.LEFT_ELBOW: (0.70, 0.31),
    PoseLandmark.RIGHT_ELBOW: (0.34, 0.36),
    PoseLandmark.LEFT_WRIST: (0.82, 0.30),
    PoseLandmark.RIGHT_WRIST: (0.44, 0.24),
    PoseLandmark.LEFT_HIP: (0.55, 0.60),
    PoseLandmark.RIGHT_HIP: (0.45, 0.60),
}


def make_landmarks(points: Dict[PoseLandmark, Tuple[float, float]]) -> LandmarkSet:
    """Build a LandmarkSet from (x, y) pairs."""
    return LandmarkSet({index: Landmark(x=x, y=y) for index, (x, y) in points.items()})


def point(x: float, y: float) -> Landmark:
    return Landmark(x=x, y=y)


@pytest.fixture
def draw_pose() -> LandmarkSet:
    return make_landmarks(DRAW_POSE)


@pytest.fixture
def restore_logging():
    """Put the root logger back the way the test found it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class FakeBackend(PoseBackend):
    """Detector returning a fixed pose, with optional misses and failures."""

    def __init__(
        self,
        landmarks: Optional[LandmarkSet],
        miss_every: int = 0,
        fail_on: Tuple[int, ...] = (),
    ):
        super().__init__()
        self.landmarks = landmarks
        self.miss_every = miss_every
        self.fail_on = fail_on
        self.calls = 0

    @property
    def name(self) -> str:
        return "fake"

    def initialize(self) -> None:
        self._is_initialized = True

    def detect(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        call = self.calls
        self.calls += 1
        if call in self.fail_on:
            raise RuntimeError("detector crashed")
        if self.miss_every and call % self.miss_every == 0:
            return None
        return self.landmarks


class FakeVideo:
    """Video element yielding blank frames at a fixed frame interval."""

    def __init__(
        self,
        path: str = "fake.mp4",
        total_frames: int = 40,
        frame_ms: float = 33.0,
        width: int = 64,
        height: int = 48,
        openable: bool = True,
        seek_error: bool = False,
    ):
        self.path = path
        self.total_frames = total_frames
        self.frame_ms = frame_ms
        self.width = width
        self.height = height
        self.openable = openable
        self.seek_error = seek_error
        self.seeks = []
        self.closed = False
        self._current = None

    @property
    def info(self) -> Optional[VideoInfo]:
        if not self.openable:
            return None
        return VideoInfo(
            path=self.path,
            width=self.width,
            height=self.height,
            fps=1000.0 / self.frame_ms,
            total_frames=self.total_frames,
            duration_seconds=self.total_frames * self.frame_ms / 1000.0,
        )

    def iterate_frames(self, show_progress: bool = True):
        for i in range(self.total_frames):
            yield i, i * self.frame_ms, np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def seek(self, timestamp_ms: float) -> None:
        if self.seek_error:
            raise ValueError("decoder not ready")
        self.seeks.append(timestamp_ms)
        self._current = np.full((self.height, self.width, 3), (0, 0, 200), dtype=np.uint8)

    def current_frame(self):
        return self._current

    def close(self) -> None:
        self.closed = True
