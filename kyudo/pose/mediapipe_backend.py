"""MediaPipe Pose Landmarker backend (Tasks API, single person, still images)."""

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np

from kyudo.pose.base import Landmark, LandmarkSet, PoseBackend

logger = logging.getLogger(__name__)

_MODEL_BASE = "https://storage.googleapis.com/mediapipe-models/pose_landmarker"
MODEL_URLS = {
    0: f"{_MODEL_BASE}/pose_landmarker_lite/float16/1/pose_landmarker_lite.task",
    1: f"{_MODEL_BASE}/pose_landmarker_full/float16/1/pose_landmarker_full.task",
    2: f"{_MODEL_BASE}/pose_landmarker_heavy/float16/1/pose_landmarker_heavy.task",
}

DEFAULT_CACHE_DIR = Path.home() / ".cache" / "kyudo"


def _to_landmarks(detected: Sequence) -> Dict[int, Landmark]:
    return {
        index: Landmark(
            x=float(point.x),
            y=float(point.y),
            z=float(point.z),
            visibility=getattr(point, "visibility", None),
        )
        for index, point in enumerate(detected)
    }


class MediaPipeBackend(PoseBackend):
    """
    Pose detector built on the MediaPipe Pose Landmarker.

    Every frame is treated as an independent image: analysis may skip
    frames while the detector is busy, so no tracking state is carried
    between calls. Only the most prominent archer is returned.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        min_landmark_visibility: Optional[float] = None,
        model_complexity: int = 1,
        model_path: Optional[str] = None,
        cache_dir: Optional[str] = None,
    ):
        """
        Args:
            min_detection_confidence: Minimum confidence for pose detection.
            min_tracking_confidence: Minimum confidence for pose tracking.
            min_landmark_visibility: Visibility below which landmarks are dropped.
            model_complexity: 0=lite, 1=full, 2=heavy.
            model_path: Local `.task` model file; skips the download.
            cache_dir: Directory for downloaded models.
        """
        super().__init__(min_detection_confidence, min_tracking_confidence, min_landmark_visibility)
        if model_complexity not in MODEL_URLS:
            raise ValueError(f"model_complexity must be one of {sorted(MODEL_URLS)}, got {model_complexity}")
        self.model_complexity = model_complexity
        self.model_path = Path(model_path) if model_path else None
        self.cache_dir = Path(cache_dir) if cache_dir else DEFAULT_CACHE_DIR
        self._landmarker = None
        self._mp = None

    @property
    def name(self) -> str:
        return "mediapipe"

    def initialize(self) -> None:
        """Load the landmarker model (downloading it on first use)."""
        if self._is_initialized:
            return

        try:
            import mediapipe as mp
            from mediapipe.tasks import python as mp_tasks
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ImportError(
                f"mediapipe is required for pose detection ({e}). "
                "Install with: pip install mediapipe"
            )

        model = self._resolve_model()
        options = vision.PoseLandmarkerOptions(
            base_options=mp_tasks.BaseOptions(model_asset_path=str(model)),
            running_mode=vision.RunningMode.IMAGE,
            num_poses=1,
            min_pose_detection_confidence=self.min_detection_confidence,
            min_tracking_confidence=self.min_tracking_confidence,
            output_segmentation_masks=False,
        )

        try:
            self._landmarker = vision.PoseLandmarker.create_from_options(options)
        except Exception as e:
            logger.error(f"Could not create MediaPipe Pose Landmarker from {model}: {e}")
            raise

        self._mp = mp
        self._is_initialized = True
        logger.info(f"MediaPipe Pose Landmarker ready ({model.name})")

    def _resolve_model(self) -> Path:
        """Local model file, downloading the configured variant if needed."""
        if self.model_path is not None:
            if not self.model_path.exists():
                raise FileNotFoundError(f"Pose model not found: {self.model_path}")
            return self.model_path

        import urllib.request

        url = MODEL_URLS[self.model_complexity]
        target = self.cache_dir / url.rsplit("/", 1)[-1]
        if target.exists():
            return target

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = target.with_suffix(".part")
        logger.info(f"Downloading pose model {url}")
        urllib.request.urlretrieve(url, partial)
        partial.replace(target)
        logger.info(f"Pose model saved to {target}")
        return target

    def detect(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        """
        Detect the archer's pose in a BGR frame.

        Returns:
            LandmarkSet in normalized coordinates, or None if nobody was found.
        """
        if not self._is_initialized:
            self.initialize()

        import cv2

        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)
        result = self._landmarker.detect(image)

        if not result.pose_landmarks:
            return None
        return self.filter_landmarks(_to_landmarks(result.pose_landmarks[0]))

    def cleanup(self) -> None:
        if self._landmarker is not None:
            self._landmarker.close()
            self._landmarker = None
        self._is_initialized = False
        logger.debug("MediaPipe Pose Landmarker closed")
