"""Variable-speed replay of captured frames synchronized to the source video."""

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from kyudo.capture.buffer import CaptureBuffer, CapturedFrame
from kyudo.pose.overlay import draw_frame_label, fill_placeholder, render_overlay
from kyudo.replay.ticker import Ticker

logger = logging.getLogger(__name__)

SPEEDS: Tuple[float, ...] = (0.25, 0.5, 1.0, 2.0)

PresentCallback = Callable[[np.ndarray, CapturedFrame], None]


@dataclass(frozen=True)
class ReplayState:
    """
    Snapshot of the replay controller.

    Attributes:
        active: Whether playback is running (playing or paused).
        paused: Whether playback is paused.
        speed: Playback rate multiplier.
        current_index: Index of the frame currently displayed.
        total_frames: Number of frames available for replay.
        finished: Whether the last run reached the final frame.
    """
    active: bool = False
    paused: bool = False
    speed: float = 1.0
    current_index: int = 0
    total_frames: int = 0
    finished: bool = False

    @property
    def status(self) -> str:
        if self.active:
            return "paused" if self.paused else "playing"
        return "finished" if self.finished else "idle"


class ReplayScheduler:
    """
    Replays the capture buffer at a chosen speed.

    Playback advances a virtual clock by the real time elapsed between
    ticks multiplied by the speed, then shows the latest stored frame whose
    timestamp does not exceed the virtual clock. For each shown frame the
    video is repositioned, the overlay is drawn and the composed image is
    handed to `on_present`.

    Ticks come from an injected `Ticker`, so playback can be driven by a
    real refresh loop or simulated in tests. All methods are meant to be
    called from the ticker's thread.
    """

    def __init__(
        self,
        buffer: CaptureBuffer,
        ticker: Ticker,
        video=None,
        width: int = 640,
        height: int = 360,
        on_present: Optional[PresentCallback] = None,
        speed: float = 1.0,
    ):
        """
        Initialize the scheduler.

        Args:
            buffer: Frames captured during analysis.
            ticker: Source of redraw ticks.
            video: Video element with `seek(timestamp_ms)` and
                `current_frame()`; None draws on a placeholder background.
            width: Output surface width in pixels.
            height: Output surface height in pixels.
            on_present: Receives each composed surface and its frame.
            speed: Initial speed multiplier (one of SPEEDS).
        """
        self._check_speed(speed)
        self.buffer = buffer
        self.ticker = ticker
        self.video = video
        self.width = width
        self.height = height
        self.on_present = on_present

        self._default_speed = speed
        self._speed = speed
        self._active = False
        self._paused = False
        self._finished = False
        self._index = 0
        self._virtual_ms = 0.0
        self._last_tick_ms: Optional[float] = None
        self._handle: Optional[int] = None
        self._generation = 0

    @staticmethod
    def _check_speed(speed: float) -> None:
        if speed not in SPEEDS:
            raise ValueError(f"Unsupported replay speed {speed}; choose one of {SPEEDS}")

    @property
    def state(self) -> ReplayState:
        """Current replay state."""
        return ReplayState(
            active=self._active,
            paused=self._paused,
            speed=self._speed,
            current_index=self._index,
            total_frames=self.buffer.size(),
            finished=self._finished,
        )

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def virtual_ms(self) -> float:
        """Virtual playback clock in video milliseconds."""
        return self._virtual_ms

    def start(self, from_index: int = 0, speed: Optional[float] = None) -> None:
        """
        Start playback from a frame.

        Does nothing when the buffer is empty.

        Args:
            from_index: Frame to start from.
            speed: Speed multiplier; keeps the current speed if None.

        Raises:
            IndexError: If `from_index` is not a stored frame.
            ValueError: If `speed` is not one of SPEEDS.
        """
        if self.buffer.size() == 0:
            logger.debug("Replay requested with an empty capture buffer")
            return
        if speed is not None:
            self._check_speed(speed)

        frame = self.buffer.get(from_index)

        self._cancel_pending()
        self._generation += 1
        if speed is not None:
            self._speed = speed
        self._active = True
        self._paused = False
        self._finished = False
        self._index = from_index
        self._virtual_ms = frame.timestamp_ms
        self._last_tick_ms = None
        self._request_tick()

        logger.info(f"Replay started at frame {from_index} ({self._speed}x)")

    def pause(self) -> None:
        """Pause playback, keeping the current position."""
        if not self._active:
            return
        self._paused = True
        logger.debug(f"Replay paused at frame {self._index}")

    def resume(self) -> None:
        """Resume playback without catching up on the paused time."""
        if not self._active or not self._paused:
            return
        self._paused = False
        self._last_tick_ms = None
        logger.debug(f"Replay resumed at frame {self._index}")

    def toggle_pause(self) -> None:
        if self._paused:
            self.resume()
        else:
            self.pause()

    def seek(self, index: int) -> np.ndarray:
        """
        Jump to a frame and render it immediately.

        Works while playing, paused or idle.

        Args:
            index: Frame to show.

        Returns:
            The composed surface for the frame.

        Raises:
            IndexError: If `index` is not a stored frame.
        """
        frame = self.buffer.get(index)
        self._index = index
        self._virtual_ms = frame.timestamp_ms
        self._finished = False
        return self.render(index)

    def set_speed(self, speed: float) -> None:
        """
        Change the playback speed.

        While playing, scheduling restarts from the current frame so only
        the rate changes.

        Raises:
            ValueError: If `speed` is not one of SPEEDS.
        """
        self._check_speed(speed)
        if self._active and not self._paused:
            self.start(self._index, speed)
        else:
            self._speed = speed

    def stop(self) -> None:
        """Stop playback."""
        self._cancel_pending()
        self._generation += 1
        self._active = False
        self._paused = False
        self._last_tick_ms = None

    def reset(self) -> None:
        """Stop and forget all replay state (new video load)."""
        self.stop()
        self._speed = self._default_speed
        self._finished = False
        self._index = 0
        self._virtual_ms = 0.0

    def _request_tick(self) -> None:
        self._handle = self.ticker.request_tick(partial(self._on_tick, self._generation))

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self.ticker.cancel_tick(self._handle)
            self._handle = None

    def _on_tick(self, generation: int, now_ms: float) -> None:
        if generation != self._generation or not self._active:
            return
        self._handle = None

        if self._paused:
            self._last_tick_ms = None
            self._request_tick()
            return

        total = self.buffer.size()
        if self._index >= total:
            self._finish()
            return

        if self._last_tick_ms is None:
            self._last_tick_ms = now_ms
        elapsed = max(0.0, now_ms - self._last_tick_ms)
        self._last_tick_ms = now_ms
        self._virtual_ms += elapsed * self._speed

        index = self._index
        while index + 1 < total and self.buffer.get(index + 1).timestamp_ms <= self._virtual_ms:
            index += 1
        self._index = index

        self.render(index)

        # on_present may have stopped or restarted playback
        if generation != self._generation or not self._active:
            return
        if self._index >= total - 1:
            self._finish()
            return
        self._request_tick()

    def _finish(self) -> None:
        self.stop()
        self._finished = True
        logger.info(f"Replay finished at frame {self._index}")

    def render(self, index: int) -> np.ndarray:
        """Compose the video frame and overlay for a stored frame and present it."""
        frame = self.buffer.get(index)
        surface = self._background(frame.timestamp_ms)
        draw_frame_label(surface, frame.index)
        render_overlay(surface, frame.landmarks, self.width, self.height)
        if self.on_present is not None:
            self.on_present(surface, frame)
        return surface

    def _background(self, timestamp_ms: float) -> np.ndarray:
        surface = np.zeros((self.height, self.width, 3), dtype=np.uint8)
        if self.video is None:
            fill_placeholder(surface)
            return surface

        try:
            self.video.seek(timestamp_ms)
            image = self.video.current_frame()
        except Exception as e:
            logger.debug(f"Video frame unavailable at {timestamp_ms:.0f}ms: {e}")
            image = None

        if image is None:
            fill_placeholder(surface)
            return surface

        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        if image.shape[:2] != (self.height, self.width):
            image = cv2.resize(image, (self.width, self.height))
        surface[:] = image
        return surface
