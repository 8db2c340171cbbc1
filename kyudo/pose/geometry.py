"""Joint angles and kyudo posture metrics derived from a landmark set."""

import logging
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from kyudo.pose.base import Landmark, LandmarkSet, PoseLandmark

logger = logging.getLogger(__name__)

# Fraction of the nose-to-ear-midpoint height at which the mouth is estimated
MOUTH_HEIGHT_RATIO = 0.55

METRIC_NAMES: Tuple[str, ...] = (
    "left_elbow",
    "right_elbow",
    "left_shoulder",
    "right_shoulder",
    "hip_tilt",
    "spine_tilt",
    "monomi_angle",
    "kuchiwari_offset",
)


@dataclass(frozen=True)
class AngleRecord:
    """
    Derived postural metrics for one frame.

    Angles are in degrees. A metric is None when the landmarks it needs
    were not available; it is never replaced by 0.

    Attributes:
        frame: Sequence index of the captured frame.
        left_elbow: Bow-hand elbow angle (shoulder-elbow-wrist).
        right_elbow: String-hand elbow angle.
        left_shoulder: Angle at the left shoulder between the elbow and the
            opposite shoulder.
        right_shoulder: Same for the right side.
        hip_tilt: Angle of the hip line against the horizontal.
        spine_tilt: Angle of the shoulder-midpoint to hip-midpoint line
            against the vertical.
        monomi_angle: Signed rotation of the ear line relative to the
            shoulder line, in (-180, 180].
        kuchiwari_offset: Right wrist height minus the estimated mouth
            height, in normalized units (positive = wrist lower).
    """
    frame: int = 0
    left_elbow: Optional[float] = None
    right_elbow: Optional[float] = None
    left_shoulder: Optional[float] = None
    right_shoulder: Optional[float] = None
    hip_tilt: Optional[float] = None
    spine_tilt: Optional[float] = None
    monomi_angle: Optional[float] = None
    kuchiwari_offset: Optional[float] = None

    def get(self, metric: str) -> Optional[float]:
        """Get a metric value by name."""
        if metric not in METRIC_NAMES:
            raise KeyError(f"Unknown metric: {metric}")
        return getattr(self, metric)

    def available(self) -> Dict[str, float]:
        """Metrics that could be computed for this frame."""
        return {
            name: getattr(self, name)
            for name in METRIC_NAMES
            if getattr(self, name) is not None
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format (None for unavailable metrics)."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AngleRecord":
        """Build a record from a dictionary produced by `to_dict`."""
        values = {
            name: None if data.get(name) is None else float(data[name])
            for name in METRIC_NAMES
        }
        return cls(frame=int(data.get("frame", 0)), **values)


def joint_angle(a: Landmark, b: Landmark, c: Landmark) -> float:
    """
    Calculate the angle at vertex b formed by points A-B-C.

    Args:
        a: First point.
        b: Vertex of the angle.
        c: Third point.

    Returns:
        Angle in degrees within [0, 180]. Returns 0.0 when either ray has
        zero length.
    """
    ba = np.array([a.x - b.x, a.y - b.y])
    bc = np.array([c.x - b.x, c.y - b.y])

    magnitude = np.linalg.norm(ba) * np.linalg.norm(bc)
    if magnitude == 0:
        return 0.0

    cosine_angle = np.dot(ba, bc) / magnitude
    cosine_angle = np.clip(cosine_angle, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine_angle)))


def line_orientation(start: Landmark, end: Landmark) -> float:
    """Orientation of the start->end vector in degrees (image coordinates)."""
    return math.degrees(math.atan2(end.y - start.y, end.x - start.x))


def normalize_degrees(angle: float) -> float:
    """Wrap an angle into (-180, 180]."""
    wrapped = math.fmod(angle, 360.0)
    if wrapped > 180.0:
        wrapped -= 360.0
    elif wrapped <= -180.0:
        wrapped += 360.0
    return wrapped


def midpoint(a: Landmark, b: Landmark) -> Landmark:
    return Landmark(x=(a.x + b.x) / 2, y=(a.y + b.y) / 2)


def _angle_between(
    landmarks: LandmarkSet,
    first: PoseLandmark,
    vertex: PoseLandmark,
    last: PoseLandmark,
) -> Optional[float]:
    a, b, c = landmarks.get(first), landmarks.get(vertex), landmarks.get(last)
    if a is None or b is None or c is None:
        return None
    return joint_angle(a, b, c)


def hip_tilt(landmarks: LandmarkSet) -> Optional[float]:
    """
    Absolute angle of the left->right hip vector against the horizontal.

    In [0, 180]. The vector is not folded: an archer facing the camera
    (left hip on the image right) reads close to 180.
    """
    left = landmarks.get(PoseLandmark.LEFT_HIP)
    right = landmarks.get(PoseLandmark.RIGHT_HIP)
    if left is None or right is None:
        return None
    return abs(line_orientation(left, right))


def spine_tilt(landmarks: LandmarkSet) -> Optional[float]:
    """Angle between the shoulder-midpoint to hip-midpoint line and the vertical."""
    points = [
        landmarks.get(PoseLandmark.LEFT_SHOULDER),
        landmarks.get(PoseLandmark.RIGHT_SHOULDER),
        landmarks.get(PoseLandmark.LEFT_HIP),
        landmarks.get(PoseLandmark.RIGHT_HIP),
    ]
    if any(p is None for p in points):
        return None
    shoulders = midpoint(points[0], points[1])
    hips = midpoint(points[2], points[3])
    return abs(math.degrees(math.atan2(shoulders.x - hips.x, hips.y - shoulders.y)))


def monomi_angle(landmarks: LandmarkSet) -> Optional[float]:
    """
    Head rotation (monomi) relative to the shoulders.

    Both lines are taken as the right-minus-left vector; positive values
    mean the ear line is rotated clockwise (in image coordinates) from the
    shoulder line.
    """
    l_ear = landmarks.get(PoseLandmark.LEFT_EAR)
    r_ear = landmarks.get(PoseLandmark.RIGHT_EAR)
    l_shoulder = landmarks.get(PoseLandmark.LEFT_SHOULDER)
    r_shoulder = landmarks.get(PoseLandmark.RIGHT_SHOULDER)
    if l_ear is None or r_ear is None or l_shoulder is None or r_shoulder is None:
        return None
    diff = line_orientation(l_ear, r_ear) - line_orientation(l_shoulder, r_shoulder)
    return normalize_degrees(diff)


def estimated_mouth_height(landmarks: LandmarkSet) -> Optional[float]:
    """
    Estimate the mouth height (normalized y) from the nose and ears.

    The pose model has no usable mouth landmark at full draw, so the mouth
    is placed a fixed fraction of the way from the nose to the ear midpoint.
    """
    nose = landmarks.get(PoseLandmark.NOSE)
    l_ear = landmarks.get(PoseLandmark.LEFT_EAR)
    r_ear = landmarks.get(PoseLandmark.RIGHT_EAR)
    if nose is None or l_ear is None or r_ear is None:
        return None
    ear_mid_y = (l_ear.y + r_ear.y) / 2
    return nose.y + MOUTH_HEIGHT_RATIO * (ear_mid_y - nose.y)


def kuchiwari_offset(landmarks: LandmarkSet) -> Optional[float]:
    """Right wrist height minus the estimated mouth height (positive = lower)."""
    wrist = landmarks.get(PoseLandmark.RIGHT_WRIST)
    reference = estimated_mouth_height(landmarks)
    if wrist is None or reference is None:
        return None
    return wrist.y - reference


def derive_metrics(landmarks: LandmarkSet, frame: int = 0) -> AngleRecord:
    """
    Compute every kyudo metric for one frame.

    A metric whose landmarks are missing is None; the others are still
    computed.

    Args:
        landmarks: Landmarks detected in the frame.
        frame: Sequence index to attach to the record.

    Returns:
        AngleRecord for the frame.
    """
    lm = PoseLandmark
    return AngleRecord(
        frame=frame,
        left_elbow=_angle_between(landmarks, lm.LEFT_SHOULDER, lm.LEFT_ELBOW, lm.LEFT_WRIST),
        right_elbow=_angle_between(landmarks, lm.RIGHT_SHOULDER, lm.RIGHT_ELBOW, lm.RIGHT_WRIST),
        left_shoulder=_angle_between(landmarks, lm.LEFT_ELBOW, lm.LEFT_SHOULDER, lm.RIGHT_SHOULDER),
        right_shoulder=_angle_between(landmarks, lm.RIGHT_ELBOW, lm.RIGHT_SHOULDER, lm.LEFT_SHOULDER),
        hip_tilt=hip_tilt(landmarks),
        spine_tilt=spine_tilt(landmarks),
        monomi_angle=monomi_angle(landmarks),
        kuchiwari_offset=kuchiwari_offset(landmarks),
    )
