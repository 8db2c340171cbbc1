"""Pose landmarks, kyudo geometry and overlay rendering."""

from kyudo.pose.base import Landmark, LandmarkSet, PoseBackend, PoseLandmark
from kyudo.pose.geometry import METRIC_NAMES, AngleRecord, derive_metrics, joint_angle
from kyudo.pose.mediapipe_backend import MediaPipeBackend

__all__ = [
    "Landmark",
    "LandmarkSet",
    "PoseBackend",
    "PoseLandmark",
    "METRIC_NAMES",
    "AngleRecord",
    "derive_metrics",
    "joint_angle",
    "MediaPipeBackend",
]
