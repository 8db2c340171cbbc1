"""Utility modules for the kyudo form analyzer."""

from kyudo.utils.logging_config import configure_from_config, get_logger, setup_logging
from kyudo.utils.video_utils import VideoInfo, VideoProcessor, VideoWriter, get_video_info

__all__ = [
    "configure_from_config",
    "setup_logging",
    "get_logger",
    "VideoInfo",
    "VideoProcessor",
    "VideoWriter",
    "get_video_info",
]
