"""Process-wide logging setup for analysis runs and the replay viewer."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10MB
LOG_FILE_BACKUPS = 5

# MediaPipe reports through absl; the rest come in with cv2/mediapipe imports
QUIET_LOGGERS = ("absl", "matplotlib", "PIL", "urllib3")


def _make_handlers(log_file: Optional[str], console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(
            path,
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        ))
    return handlers


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console: bool = True,
    quiet: Sequence[str] = QUIET_LOGGERS,
) -> logging.Logger:
    """
    Configure the root logger.

    Replaces any handlers installed by an earlier call, so the CLI can
    reconfigure after reading `--verbose`.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL); unknown
            names fall back to INFO.
        log_file: Optional path of a rotating log file.
        console: Whether to log to stdout.
        quiet: Third-party loggers limited to WARNING.

    Returns:
        The root logger.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    for handler in _make_handlers(log_file, console):
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(f"Logging at {logging.getLevelName(numeric_level)}" + (f" to {log_file}" if log_file else ""))
    return root


def configure_from_config(config: Mapping[str, Any], verbose: bool = False) -> logging.Logger:
    """Apply the `logging` section of the YAML configuration."""
    section = config.get("logging") or {}
    level = "DEBUG" if verbose else section.get("level", "INFO")
    return setup_logging(level=level, log_file=section.get("file"))


def get_logger(name: str) -> logging.Logger:
    """Module logger (pass `__name__`)."""
    return logging.getLogger(name)
