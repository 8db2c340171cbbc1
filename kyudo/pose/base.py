"""Landmark data model and abstract base class for pose detector backends."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)


class PoseLandmark(IntEnum):
    """Anatomical landmark numbering shared by all backends (MediaPipe Pose, 33 points)."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = len(PoseLandmark)


@dataclass(frozen=True)
class Landmark:
    """
    A single tracked body point.

    Attributes:
        x: X coordinate normalized to [0, 1] of the frame width.
        y: Y coordinate normalized to [0, 1] of the frame height.
        z: Depth relative to the hips (optional).
        visibility: Detector confidence that the point is visible (optional).
    """
    x: float
    y: float
    z: Optional[float] = None
    visibility: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "visibility": self.visibility,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Landmark":
        """Build a landmark from a dictionary produced by `to_dict`."""
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            z=data.get("z"),
            visibility=data.get("visibility"),
        )


class LandmarkSet:
    """
    Immutable set of landmarks for one frame, keyed by `PoseLandmark`.

    Any index may be missing (occluded or below the visibility threshold);
    `get` returns None for those.
    """

    __slots__ = ("_points",)

    def __init__(self, points: Optional[Mapping[int, Landmark]] = None):
        self._points: Dict[PoseLandmark, Landmark] = {}
        for index, point in (points or {}).items():
            if point is None:
                continue
            self._points[PoseLandmark(index)] = point

    @classmethod
    def from_list(cls, points: Sequence[Optional[Any]]) -> "LandmarkSet":
        """
        Build from the positional form (slot i holds landmark i or None).

        Slots may hold `Landmark` instances or dictionaries with x/y keys.
        Slots beyond the known enumeration are ignored.
        """
        mapping: Dict[int, Landmark] = {}
        for index, point in enumerate(points[:NUM_LANDMARKS]):
            if point is None:
                continue
            if not isinstance(point, Landmark):
                point = Landmark.from_dict(point)
            mapping[index] = point
        return cls(mapping)

    def to_list(self) -> List[Optional[Dict[str, Any]]]:
        """Positional form with None for missing landmarks."""
        return [
            self._points[lm].to_dict() if lm in self._points else None
            for lm in PoseLandmark
        ]

    def get(self, index: int) -> Optional[Landmark]:
        """Get a landmark by index, or None if it is not available."""
        try:
            return self._points.get(PoseLandmark(index))
        except ValueError:
            return None

    def without(self, *indices: int) -> "LandmarkSet":
        """Return a copy with the given landmarks removed."""
        drop = {PoseLandmark(i) for i in indices}
        return LandmarkSet({k: v for k, v in self._points.items() if k not in drop})

    def items(self) -> Iterator:
        return iter(sorted(self._points.items()))

    def __contains__(self, index: object) -> bool:
        try:
            return PoseLandmark(index) in self._points
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._points)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LandmarkSet):
            return NotImplemented
        return self._points == other._points

    def __repr__(self) -> str:
        return f"<LandmarkSet({len(self._points)}/{NUM_LANDMARKS} landmarks)>"


class PoseBackend(ABC):
    """
    Abstract base class for pose detector backends.

    A backend turns one video frame into a `LandmarkSet`, or None when no
    person is detected. Calls may be slow; callers serialize them.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        min_landmark_visibility: Optional[float] = None,
    ):
        """
        Initialize the pose backend.

        Args:
            min_detection_confidence: Minimum confidence for pose detection.
            min_tracking_confidence: Minimum confidence for pose tracking.
            min_landmark_visibility: Landmarks with a lower visibility are
                treated as missing. None keeps every landmark.
        """
        self.min_detection_confidence = min_detection_confidence
        self.min_tracking_confidence = min_tracking_confidence
        self.min_landmark_visibility = min_landmark_visibility
        self._is_initialized = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the pose detector backend."""
        pass

    @abstractmethod
    def initialize(self) -> None:
        """
        Initialize the pose model.

        This should be called before processing any frames.
        """
        pass

    @abstractmethod
    def detect(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        """
        Detect a single pose in a frame.

        Args:
            frame: Input frame (BGR format from OpenCV).

        Returns:
            LandmarkSet with normalized coordinates, or None if no pose.
        """
        pass

    def filter_landmarks(self, points: Mapping[int, Landmark]) -> LandmarkSet:
        """Drop landmarks below the visibility threshold."""
        if self.min_landmark_visibility is None:
            return LandmarkSet(points)
        kept = {
            index: point
            for index, point in points.items()
            if point.visibility is None or point.visibility >= self.min_landmark_visibility
        }
        dropped = len(points) - len(kept)
        if dropped:
            logger.debug(f"Dropped {dropped} low-visibility landmarks")
        return LandmarkSet(kept)

    def cleanup(self) -> None:
        """
        Clean up resources.

        Override this method to release any resources held by the backend.
        """
        self._is_initialized = False

    def __enter__(self):
        """Context manager entry."""
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup()
        return False
