"""Replay of captured frames."""

from kyudo.replay.scheduler import SPEEDS, ReplayScheduler, ReplayState
from kyudo.replay.ticker import ManualTicker, RefreshLoopTicker, Ticker

__all__ = [
    "SPEEDS",
    "ReplayScheduler",
    "ReplayState",
    "ManualTicker",
    "RefreshLoopTicker",
    "Ticker",
]
