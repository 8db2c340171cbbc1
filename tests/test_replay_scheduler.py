"""Tests for the replay scheduler and tick sources."""

import numpy as np
import pytest

from kyudo.capture.buffer import CaptureBuffer
from kyudo.pose.base import LandmarkSet
from kyudo.replay.scheduler import ReplayScheduler, ReplayState
from kyudo.replay.ticker import ManualTicker, RefreshLoopTicker
from tests.conftest import FakeVideo

FRAME_MS = 33.0
PLACEHOLDER = [30, 15, 10]


def filled_buffer(count, landmarks=None):
    buffer = CaptureBuffer()
    for i in range(count):
        buffer.append(landmarks if landmarks is not None else LandmarkSet(), i * FRAME_MS)
    return buffer


def make_scheduler(count=60, video=None, on_present=None, speed=1.0):
    ticker = ManualTicker(start_ms=1000.0)
    scheduler = ReplayScheduler(
        filled_buffer(count),
        ticker,
        video=video,
        width=64,
        height=48,
        on_present=on_present,
        speed=speed,
    )
    return scheduler, ticker


def play(ticker, ticks, interval=FRAME_MS):
    for _ in range(ticks):
        ticker.advance(interval)


class TestPlayback:
    def test_normal_speed_follows_real_time(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        assert scheduler.current_index == 0

        play(ticker, 10)
        assert scheduler.current_index == 10
        assert scheduler.virtual_ms == pytest.approx(330.0)

    def test_double_speed(self):
        scheduler, ticker = make_scheduler(speed=2.0)
        scheduler.start(0)
        ticker.tick()
        play(ticker, 10)
        assert scheduler.current_index == 20

    def test_quarter_speed(self):
        scheduler, ticker = make_scheduler(speed=0.25)
        scheduler.start(0)
        ticker.tick()
        play(ticker, 8)
        assert scheduler.current_index == 2

    def test_high_refresh_rate(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        play(ticker, 20, interval=16.5)
        assert scheduler.current_index == 10

    def test_start_from_index(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(12)
        ticker.tick()
        play(ticker, 3)
        assert scheduler.current_index == 15

    def test_start_on_empty_buffer_is_noop(self):
        scheduler, ticker = make_scheduler(count=0)
        scheduler.start(0)
        assert scheduler.state == ReplayState()
        assert ticker.pending == 0

    def test_start_out_of_range(self):
        scheduler, _ = make_scheduler(count=5)
        with pytest.raises(IndexError):
            scheduler.start(5)

    def test_restart_keeps_a_single_pending_tick(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        scheduler.start(3)
        assert ticker.pending == 1
        ticker.tick()
        assert scheduler.current_index == 3

    def test_finishes_on_last_frame(self):
        scheduler, ticker = make_scheduler(count=5)
        scheduler.start(0)
        ticks = ticker.run(interval_ms=FRAME_MS)

        state = scheduler.state
        assert ticks == 5
        assert state.finished
        assert not state.active
        assert state.status == "finished"
        assert state.current_index == 4
        assert ticker.pending == 0

    def test_single_frame(self):
        scheduler, ticker = make_scheduler(count=1)
        scheduler.start(0)
        ticker.run(interval_ms=FRAME_MS)
        assert scheduler.state.finished
        assert scheduler.current_index == 0

    def test_presented_frames_never_go_backwards(self):
        presented = []
        scheduler, ticker = make_scheduler(
            count=30, speed=2.0, on_present=lambda surface, frame: presented.append(frame.index)
        )
        scheduler.start(0)
        ticker.run(interval_ms=16.0)
        assert presented == sorted(presented)
        assert presented[0] == 0
        assert presented[-1] == 29

    def test_stop_from_present_callback(self):
        holder = {}

        def on_present(surface, frame):
            holder["scheduler"].stop()

        scheduler, ticker = make_scheduler(on_present=on_present)
        holder["scheduler"] = scheduler
        scheduler.start(0)
        ticker.tick()
        assert ticker.pending == 0
        assert not scheduler.state.active
        assert not scheduler.state.finished

    def test_stop(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        play(ticker, 3)
        scheduler.stop()
        assert ticker.pending == 0
        play(ticker, 3)
        assert scheduler.current_index == 3
        assert scheduler.state.status == "idle"

    def test_reset(self):
        scheduler, ticker = make_scheduler(count=5, speed=0.5)
        scheduler.set_speed(2.0)
        scheduler.start(0)
        ticker.run(interval_ms=FRAME_MS)
        scheduler.reset()
        assert scheduler.state == ReplayState(speed=0.5, total_frames=5)


class TestPauseResume:
    def test_paused_time_is_not_caught_up(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        play(ticker, 5)
        assert scheduler.current_index == 5

        scheduler.pause()
        assert scheduler.state.status == "paused"
        play(ticker, 10, interval=1000.0)
        assert scheduler.current_index == 5

        scheduler.resume()
        ticker.advance(FRAME_MS)
        assert scheduler.current_index == 5
        ticker.advance(FRAME_MS)
        assert scheduler.current_index == 6

    def test_toggle_pause(self):
        scheduler, _ = make_scheduler()
        scheduler.start(0)
        scheduler.toggle_pause()
        assert scheduler.state.paused
        scheduler.toggle_pause()
        assert not scheduler.state.paused

    def test_pause_when_idle_is_ignored(self):
        scheduler, _ = make_scheduler()
        scheduler.pause()
        assert scheduler.state == ReplayState(total_frames=60)


class TestSeek:
    def test_seek_when_idle(self):
        scheduler, _ = make_scheduler()
        surface = scheduler.seek(7)
        assert scheduler.current_index == 7
        assert surface.shape == (48, 64, 3)

    def test_seek_while_playing_reanchors_the_clock(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        play(ticker, 2)
        scheduler.seek(30)
        assert scheduler.current_index == 30
        ticker.advance(FRAME_MS)
        assert scheduler.current_index == 31

    def test_seek_while_paused(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(10)
        ticker.tick()
        scheduler.pause()
        scheduler.seek(3)
        play(ticker, 3)
        assert scheduler.current_index == 3
        assert scheduler.state.paused

    @pytest.mark.parametrize("index", [-1, 60])
    def test_seek_out_of_range(self, index):
        scheduler, _ = make_scheduler()
        with pytest.raises(IndexError):
            scheduler.seek(index)


class TestSpeed:
    def test_change_while_playing_keeps_position(self):
        scheduler, ticker = make_scheduler()
        scheduler.start(0)
        ticker.tick()
        play(ticker, 4)
        scheduler.set_speed(2.0)
        assert scheduler.current_index == 4
        assert scheduler.state.speed == 2.0

        ticker.advance(FRAME_MS)
        assert scheduler.current_index == 4
        ticker.advance(FRAME_MS)
        assert scheduler.current_index == 6

    def test_change_while_paused_stays_paused(self):
        scheduler, _ = make_scheduler()
        scheduler.start(0)
        scheduler.pause()
        scheduler.set_speed(0.5)
        assert scheduler.state.paused
        assert scheduler.state.speed == 0.5

    @pytest.mark.parametrize("speed", [0.0, 0.3, 1.5, 3.0, -1.0])
    def test_unsupported_speed(self, speed):
        scheduler, _ = make_scheduler()
        with pytest.raises(ValueError):
            scheduler.set_speed(speed)
        with pytest.raises(ValueError):
            scheduler.start(0, speed=speed)
        with pytest.raises(ValueError):
            make_scheduler(speed=speed)


class TestRendering:
    def test_video_frame_is_background(self):
        video = FakeVideo()
        scheduler, _ = make_scheduler(video=video)
        surface = scheduler.seek(2)
        assert video.seeks == [pytest.approx(66.0)]
        assert surface[-1, -1].tolist() == [0, 0, 200]

    def test_video_frame_is_resized(self):
        scheduler, _ = make_scheduler(video=FakeVideo(width=32, height=24))
        surface = scheduler.seek(0)
        assert surface.shape == (48, 64, 3)
        assert surface[-1, -1].tolist() == [0, 0, 200]

    def test_unavailable_video_falls_back_to_placeholder(self):
        scheduler, _ = make_scheduler(video=FakeVideo(seek_error=True))
        surface = scheduler.seek(0)
        assert surface[-1, -1].tolist() == PLACEHOLDER

    def test_no_video(self):
        scheduler, _ = make_scheduler()
        surface = scheduler.seek(0)
        assert surface[-1, -1].tolist() == PLACEHOLDER

    def test_frame_label_is_drawn(self):
        scheduler, _ = make_scheduler()
        surface = scheduler.seek(0)
        placeholder = np.zeros_like(surface)
        placeholder[:] = PLACEHOLDER
        assert not np.array_equal(surface, placeholder)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class TestTickers:
    def test_cancelled_callback_does_not_fire(self):
        ticker = ManualTicker()
        fired = []
        handle = ticker.request_tick(fired.append)
        ticker.cancel_tick(handle)
        assert ticker.tick() == 0
        assert fired == []

    def test_callbacks_fire_once(self):
        ticker = ManualTicker(start_ms=5.0)
        fired = []
        ticker.request_tick(fired.append)
        ticker.advance(10.0)
        ticker.advance(10.0)
        assert fired == [15.0]

    def test_refresh_loop_plays_to_the_end(self):
        clock = FakeClock()
        ticker = RefreshLoopTicker(refresh_hz=50.0, clock=clock, sleep=clock.sleep)
        scheduler = ReplayScheduler(filled_buffer(10), ticker, width=64, height=48)
        scheduler.start(0)
        ticker.run()
        assert scheduler.state.finished
        assert scheduler.current_index == 9
        assert clock.now == pytest.approx(0.3, abs=0.03)

    def test_refresh_loop_stops_when_host_says_so(self):
        clock = FakeClock()
        ticker = RefreshLoopTicker(refresh_hz=50.0, clock=clock, sleep=clock.sleep)
        scheduler = ReplayScheduler(filled_buffer(60), ticker, width=64, height=48)
        calls = []

        def on_idle():
            calls.append(clock.now)
            return len(calls) < 3

        scheduler.start(0)
        ticker.run(on_idle=on_idle)
        assert len(calls) == 3
        assert scheduler.state.active

    def test_refresh_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            RefreshLoopTicker(refresh_hz=0)
