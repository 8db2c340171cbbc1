"""Analysis session: live capture, evaluation, export and replay for one video."""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from kyudo.capture.buffer import CaptureBuffer
from kyudo.evaluation.export import dumps, export_records
from kyudo.evaluation.scorer import NOMINAL_FPS, EvaluationReport, evaluate, summarize
from kyudo.pipeline.detection import DetectionGate
from kyudo.pose.base import LandmarkSet, PoseBackend
from kyudo.pose.geometry import AngleRecord, derive_metrics
from kyudo.pose.mediapipe_backend import MediaPipeBackend
from kyudo.replay.scheduler import PresentCallback, ReplayScheduler
from kyudo.replay.ticker import Ticker
from kyudo.utils.logging_config import get_logger
from kyudo.utils.video_utils import VideoProcessor

logger = get_logger(__name__)


class SessionStatus(Enum):
    """Lifecycle of an analysis session."""
    IDLE = "idle"
    READY = "ready"
    ANALYZING = "analyzing"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATUSES = (SessionStatus.DONE, SessionStatus.ERROR)


@dataclass
class SessionConfig:
    """
    Configuration for an analysis session.

    Attributes:
        pose_backend: Pose detector backend name.
        model_complexity: MediaPipe model complexity (0=lite, 1=full, 2=heavy).
        model_path: Local MediaPipe `.task` model file (downloaded if unset).
        min_detection_confidence: Minimum confidence for pose detection.
        min_tracking_confidence: Minimum confidence for pose tracking.
        min_landmark_visibility: Landmarks below this visibility count as missing.
        realtime: Offer frames at the video's native rate and skip frames
            while the detector is busy, instead of analyzing every frame.
        nominal_fps: Frame rate assumed by the scorer for kai duration.
        replay_speed: Initial replay speed multiplier.
        export_path: Default path for the JSON export.
    """
    pose_backend: str = "mediapipe"
    model_complexity: int = 1
    model_path: Optional[str] = None
    min_detection_confidence: float = 0.5
    min_tracking_confidence: float = 0.5
    min_landmark_visibility: Optional[float] = None
    realtime: bool = False
    nominal_fps: float = NOMINAL_FPS
    replay_speed: float = 1.0
    export_path: str = "kyudo_analysis.json"


@dataclass
class AnalysisProgress:
    """
    Counters for the current session.

    Attributes:
        status: Session status.
        frames_offered: Video frames offered to the detector.
        frames_captured: Frames with a detected pose.
        frames_skipped: Frames dropped because a detection was in flight.
        frames_without_pose: Frames where no pose was detected.
        errors: Error messages.
    """
    status: SessionStatus = SessionStatus.IDLE
    frames_offered: int = 0
    frames_captured: int = 0
    frames_skipped: int = 0
    frames_without_pose: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "frames_offered": self.frames_offered,
            "frames_captured": self.frames_captured,
            "frames_skipped": self.frames_skipped,
            "frames_without_pose": self.frames_without_pose,
            "error_count": len(self.errors),
        }


class AnalysisSession:
    """
    Analysis of one kyudo video at a time.

    Loading a video resets the capture buffer, the angle records, the
    report and the replay state. `run` captures poses frame by frame and
    evaluates the form when the video ends; afterwards the captured frames
    can be exported or replayed.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        backend: Optional[PoseBackend] = None,
        video_factory: Callable[[str], Any] = VideoProcessor,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the session.

        Args:
            config: Session configuration. Uses defaults if not provided.
            backend: Pose detector; created from the config if not provided.
            video_factory: Builds the video element for a path.
            clock: Monotonic clock in seconds (realtime pacing).
            sleep: Sleep function in seconds (realtime pacing).
        """
        self.config = config or SessionConfig()
        self.buffer = CaptureBuffer()
        self.progress = AnalysisProgress()
        self.report: Optional[EvaluationReport] = None
        self.video = None

        self._pose_backend = backend
        self._video_factory = video_factory
        self._clock = clock
        self._sleep = sleep
        self._records: List[AngleRecord] = []
        self._records_lock = threading.Lock()
        self._gate: Optional[DetectionGate] = None
        self._replay: Optional[ReplayScheduler] = None
        self._generation = 0
        # Held by result handlers while storing and by load_video while resetting
        self._session_lock = threading.Lock()

    @property
    def pose_backend(self) -> PoseBackend:
        """Get or create the pose detector backend."""
        if self._pose_backend is None:
            if self.config.pose_backend == "mediapipe":
                self._pose_backend = MediaPipeBackend(
                    min_detection_confidence=self.config.min_detection_confidence,
                    min_tracking_confidence=self.config.min_tracking_confidence,
                    min_landmark_visibility=self.config.min_landmark_visibility,
                    model_complexity=self.config.model_complexity,
                    model_path=self.config.model_path,
                )
            else:
                raise ValueError(f"Unknown pose backend: {self.config.pose_backend}")
            self._pose_backend.initialize()
        return self._pose_backend

    @property
    def status(self) -> SessionStatus:
        return self.progress.status

    @property
    def records(self) -> Tuple[AngleRecord, ...]:
        """Angle records captured so far, in frame order."""
        with self._records_lock:
            return tuple(self._records)

    @property
    def frame_count(self) -> int:
        """Number of captured frames."""
        return self.buffer.size()

    def load_video(self, video_path: str) -> bool:
        """
        Start a new session for a video.

        Any running analysis or replay of the previous video is cancelled
        before state is reset.

        Args:
            video_path: Path to the video file.

        Returns:
            True if the video metadata could be read.
        """
        self._cancel_activity()
        with self._session_lock:
            self._generation += 1
            self.buffer.reset()
            with self._records_lock:
                self._records = []
            self.report = None
            self.progress = AnalysisProgress()

        if self.video is not None:
            self.video.close()
            self.video = None
        if self._replay is not None:
            self._replay.reset()
            self._replay = None

        video = self._video_factory(str(video_path))
        info = video.info
        if info is None:
            message = f"Could not open video: {video_path}"
            logger.error(message)
            self.progress.errors.append(message)
            self.progress.status = SessionStatus.ERROR
            return False

        self.video = video
        self.progress.status = SessionStatus.READY
        logger.info(
            f"Loaded {video_path}: {info.width}x{info.height} @ {info.fps:.2f} fps, "
            f"{info.total_frames} frames"
        )
        return True

    def run(self, show_progress: bool = True) -> Optional[EvaluationReport]:
        """
        Capture poses for every frame of the loaded video and evaluate them.

        Returns:
            EvaluationReport, or None if no frame had a detectable pose.

        Raises:
            RuntimeError: If no video is ready for analysis.
        """
        if self.status is not SessionStatus.READY or self.video is None:
            raise RuntimeError(f"No video ready for analysis (status: {self.status.value})")

        generation = self._generation
        backend = self.pose_backend
        gate = DetectionGate(backend, self._handler_for(generation))
        self._gate = gate
        progress = self.progress
        progress.status = SessionStatus.ANALYZING

        realtime = self.config.realtime
        start = self._clock()
        failed = False

        try:
            for frame_number, timestamp_ms, frame in self.video.iterate_frames(show_progress=show_progress):
                if generation != self._generation:
                    break

                if realtime:
                    delay = start + timestamp_ms / 1000.0 - self._clock()
                    if delay > 0:
                        self._sleep(delay)

                progress.frames_offered += 1
                if not gate.offer(frame, frame_number, timestamp_ms):
                    progress.frames_skipped += 1
                    logger.debug(f"Detector busy, skipped frame {frame_number}")
                    continue

                if not realtime:
                    gate.wait_idle()

            gate.wait_idle()
        except Exception as e:
            failed = True
            message = f"Video decoding failed: {e}"
            logger.error(message)
            progress.errors.append(message)
        finally:
            gate.shutdown()
            if self._gate is gate:
                self._gate = None

        with self._session_lock:
            return self._finish(generation, gate, failed)

    def _finish(self, generation: int, gate: DetectionGate, failed: bool) -> Optional[EvaluationReport]:
        if generation != self._generation:
            logger.info("Analysis cancelled by a new video load")
            return None

        self.progress.status = SessionStatus.ERROR if failed else SessionStatus.DONE
        if gate.errors:
            self.progress.errors.append(f"{gate.errors} detector errors")

        logger.info(
            f"Analysis {self.status.value}: {self.progress.frames_captured} frames captured, "
            f"{self.progress.frames_without_pose} without pose, "
            f"{self.progress.frames_skipped} skipped"
        )
        logger.debug(f"Session progress: {self.progress.to_dict()}")

        if self.buffer.size() == 0:
            logger.warning("No pose detected in any frame; nothing to evaluate")
            return None

        self.report = evaluate(self.records, nominal_fps=self.config.nominal_fps)
        logger.info(f"Form score {self.report.score} ({self.report.rank}): {dict(summarize(self.report))}")
        return self.report

    def handle_detection(
        self,
        landmarks: Optional[LandmarkSet],
        frame_number: int,
        timestamp_ms: float,
    ) -> None:
        """
        Store one detection result.

        Frames without a pose are counted and dropped; all others are
        appended to the capture buffer with their angle record.
        """
        if landmarks is None or len(landmarks) == 0:
            self.progress.frames_without_pose += 1
            logger.debug(f"No pose detected in frame {frame_number}")
            return

        captured = self.buffer.append(landmarks, timestamp_ms)
        record = derive_metrics(landmarks, frame=captured.index)
        with self._records_lock:
            self._records.append(record)
        self.progress.frames_captured += 1

    def _handler_for(self, generation: int):
        """Result handler that ignores results belonging to an older video load."""
        def handle(landmarks: Optional[LandmarkSet], frame_number: int, timestamp_ms: float) -> None:
            with self._session_lock:
                if generation != self._generation:
                    return
                self.handle_detection(landmarks, frame_number, timestamp_ms)
        return handle

    def export_json(self) -> str:
        """Serialize the angle records as `{"frames": [...]}` JSON."""
        return dumps(self.records)

    def export(self, path: Optional[str] = None) -> Path:
        """Write the angle records to a JSON file."""
        return export_records(self.records, path or self.config.export_path)

    def replay(
        self,
        ticker: Ticker,
        on_present: Optional[PresentCallback] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
    ) -> ReplayScheduler:
        """
        Get a replay scheduler for the captured frames.

        Args:
            ticker: Source of redraw ticks.
            on_present: Receives each composed replay image.
            width: Output width (defaults to the video width).
            height: Output height (defaults to the video height).

        Raises:
            RuntimeError: If analysis has not reached a terminal state.
        """
        if self.status not in TERMINAL_STATUSES:
            raise RuntimeError(f"Replay is only available after analysis (status: {self.status.value})")

        info = self.video.info if self.video is not None else None
        if self._replay is not None:
            self._replay.reset()

        self._replay = ReplayScheduler(
            buffer=self.buffer,
            ticker=ticker,
            video=self.video,
            width=width or (info.width if info else 640),
            height=height or (info.height if info else 360),
            on_present=on_present,
            speed=self.config.replay_speed,
        )
        return self._replay

    def _cancel_activity(self) -> None:
        if self._replay is not None:
            self._replay.stop()
        if self._gate is not None:
            self._gate.cancel()

    def cleanup(self) -> None:
        """Clean up resources."""
        self._cancel_activity()
        if self.video is not None:
            self.video.close()
            self.video = None
        if self._pose_backend is not None:
            self._pose_backend.cleanup()

        logger.debug("Session resources cleaned up")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.cleanup()
        return False
