#!/usr/bin/env python3
"""Command-line interface for kyudo form analysis."""

import sys
from pathlib import Path

import click
import yaml

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

KEY_SPEEDS = {ord("1"): 0.25, ord("2"): 0.5, ord("3"): 1.0, ord("4"): 2.0}
WINDOW_NAME = "Kyudo replay"


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            return yaml.safe_load(f) or {}
    return {}


def build_session_config(cfg: dict, **overrides):
    """Build a SessionConfig from the YAML configuration."""
    from kyudo.pipeline.orchestrator import SessionConfig

    pose_cfg = cfg.get("pose", {})
    analysis_cfg = cfg.get("analysis", {})
    session_config = SessionConfig(
        pose_backend=pose_cfg.get("default_backend", "mediapipe"),
        model_complexity=pose_cfg.get("model_complexity", 1),
        model_path=pose_cfg.get("model_path"),
        min_detection_confidence=pose_cfg.get("min_detection_confidence", 0.5),
        min_tracking_confidence=pose_cfg.get("min_tracking_confidence", 0.5),
        min_landmark_visibility=pose_cfg.get("min_landmark_visibility"),
        realtime=analysis_cfg.get("realtime", False),
        nominal_fps=analysis_cfg.get("nominal_fps", 30.0),
        replay_speed=cfg.get("replay", {}).get("default_speed", 1.0),
        export_path=cfg.get("export", {}).get("path", "kyudo_analysis.json"),
    )
    for key, value in overrides.items():
        if value is not None:
            setattr(session_config, key, value)
    return session_config


def configure_logging(ctx: click.Context) -> None:
    from kyudo.utils.logging_config import configure_from_config

    configure_from_config(ctx.obj["config"], verbose=ctx.obj["verbose"])


def echo_report(report) -> None:
    """Print an evaluation report."""
    marks = {"good": "OK ", "caution": "!! ", "poor": "XX "}
    click.echo()
    click.echo(f"Form score: {report.score} ({report.rank})")
    for item in report.items:
        click.echo(f"  {marks[item.tier.value]}{item.label}: {item.score}")
        click.echo(f"      {item.comment}")
        click.echo(f"      Ideal: {item.ideal}")


def analyze_video(ctx: click.Context, video: str, **overrides):
    """Load and analyze a video, returning the session (or exiting on failure)."""
    from kyudo.pipeline.orchestrator import AnalysisSession

    session_config = build_session_config(ctx.obj["config"], **overrides)
    session = AnalysisSession(session_config)

    if not session.load_video(video):
        session.cleanup()
        raise click.ClickException(f"Could not open video: {video}")

    click.echo(f"Analyzing {video}...")
    report = session.run(show_progress=True)

    progress = session.progress
    click.echo(
        f"Captured {progress.frames_captured}/{progress.frames_offered} frames "
        f"({progress.frames_without_pose} without pose, {progress.frames_skipped} skipped)"
    )
    if report is None:
        click.echo("No pose was detected; nothing to evaluate.", err=True)
    else:
        echo_report(report)
    return session


@click.group()
@click.option(
    "--config",
    "-c",
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging",
)
@click.pass_context
def cli(ctx: click.Context, config: str, verbose: bool) -> None:
    """Kyudo Form Analyzer.

    Derive joint angles from a kyudo video, score the form and replay
    the captured skeleton overlay.
    """
    ctx.ensure_object(dict)

    ctx.obj["config"] = load_config(config)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--export",
    "-e",
    "export_path",
    type=click.Path(dir_okay=False),
    help="Write per-frame angles to this JSON file",
)
@click.option(
    "--realtime/--every-frame",
    default=None,
    help="Pace analysis at the video frame rate and skip frames while the detector is busy",
)
@click.pass_context
def analyze(ctx: click.Context, video: str, export_path: str, realtime: bool) -> None:
    """Analyze a video and print the form evaluation."""
    configure_logging(ctx)

    session = analyze_video(ctx, video, realtime=realtime)
    with session:
        if export_path:
            path = session.export(export_path)
            click.echo(f"Exported angles to {path}")


@cli.command()
@click.argument("video", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--speed",
    "-s",
    type=click.Choice(["0.25", "0.5", "1", "2"]),
    default=None,
    help="Replay speed multiplier",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False),
    help="Render the replay to a video file instead of a window",
)
@click.pass_context
def replay(ctx: click.Context, video: str, speed: str, output: str) -> None:
    """Analyze a video, then replay the skeleton overlay.

    Window keys: space pause/resume, 1-4 speed (0.25x-2x),
    a/d step one frame back/forward, r restart, q quit.
    """
    configure_logging(ctx)

    replay_speed = float(speed) if speed else None
    session = analyze_video(ctx, video, replay_speed=replay_speed)

    with session:
        if session.frame_count == 0:
            raise click.ClickException("No frames captured; nothing to replay")

        if output:
            render_replay(session, output)
        else:
            show_replay(ctx, session)


def render_replay(session, output: str) -> None:
    """Render the replay to a video file by simulating display refreshes."""
    from kyudo.replay.ticker import ManualTicker
    from kyudo.utils.video_utils import FALLBACK_FPS, FALLBACK_SIZE, VideoWriter

    info = session.video.info if session.video is not None else None
    fps = info.fps if info and info.fps > 0 else FALLBACK_FPS
    size = (info.width, info.height) if info else FALLBACK_SIZE
    ticker = ManualTicker()

    with VideoWriter(output, fps=fps, size=size) as writer:
        scheduler = session.replay(ticker, on_present=lambda surface, frame: writer.write(surface))
        scheduler.start(0)
        ticker.run(interval_ms=1000.0 / fps)

    click.echo(f"Rendered {writer.frames_written} frames to {output}")


def show_replay(ctx: click.Context, session) -> None:
    """Show the replay in an OpenCV window with keyboard control."""
    import cv2

    from kyudo.replay.ticker import RefreshLoopTicker

    refresh_hz = ctx.obj["config"].get("replay", {}).get("refresh_hz", 60.0)
    ticker = RefreshLoopTicker(refresh_hz=refresh_hz)
    scheduler = session.replay(ticker, on_present=lambda surface, frame: cv2.imshow(WINDOW_NAME, surface))

    def handle_keys() -> bool:
        key = cv2.waitKey(1) & 0xFF
        if key == ord("q"):
            scheduler.stop()
            return False
        if key == ord(" "):
            scheduler.toggle_pause()
        elif key in KEY_SPEEDS:
            scheduler.set_speed(KEY_SPEEDS[key])
        elif key in (ord("a"), ord("d")):
            step = -1 if key == ord("a") else 1
            target = scheduler.current_index + step
            if 0 <= target < session.frame_count:
                scheduler.seek(target)
        elif key == ord("r"):
            scheduler.start(0)
        return True

    click.echo("Replaying (space: pause, 1-4: speed, a/d: step, r: restart, q: quit)")
    scheduler.start(0)
    ticker.run(on_idle=handle_keys)

    state = scheduler.state
    click.echo(f"Replay {state.status} at frame {state.current_index}/{state.total_frames}")
    cv2.destroyAllWindows()


@cli.command()
@click.argument("export_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def evaluate(ctx: click.Context, export_file: str) -> None:
    """Score a previously exported angle JSON file."""
    from kyudo.evaluation.export import load_export
    from kyudo.evaluation.scorer import evaluate as evaluate_form

    configure_logging(ctx)

    try:
        records = load_export(export_file)
    except ValueError as e:
        raise click.ClickException(str(e))

    nominal_fps = ctx.obj["config"].get("analysis", {}).get("nominal_fps", 30.0)
    report = evaluate_form(records, nominal_fps=nominal_fps)
    click.echo(f"Loaded {len(records)} frames from {export_file}")
    echo_report(report)


@cli.command()
@click.pass_context
def version(ctx: click.Context) -> None:
    """Show version information."""
    from kyudo import __version__

    click.echo("Kyudo Form Analyzer")
    click.echo(f"Version: {__version__}")


if __name__ == "__main__":
    cli()
