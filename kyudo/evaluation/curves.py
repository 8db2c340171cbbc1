"""Piecewise scoring curves expressed as ordered (interval, formula) rule tables."""

import math
from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

Formula = Callable[[float], float]


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp a value into [low, high]."""
    return min(high, max(low, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def constant(score: float) -> Formula:
    return lambda _value: score


def linear(base: float, anchor: float, slope: float) -> Formula:
    """Formula `base + (value - anchor) * slope`."""
    return lambda value: base + (value - anchor) * slope


@dataclass(frozen=True)
class Interval:
    """
    A real interval with independently open or closed ends.

    Attributes:
        low: Lower bound (-inf for unbounded).
        high: Upper bound (inf for unbounded).
        low_closed: Whether `low` itself belongs to the interval.
        high_closed: Whether `high` itself belongs to the interval.
    """
    low: float = -math.inf
    high: float = math.inf
    low_closed: bool = True
    high_closed: bool = True

    def __contains__(self, value: float) -> bool:
        if value < self.low or (value == self.low and not self.low_closed):
            return False
        if value > self.high or (value == self.high and not self.high_closed):
            return False
        return True

    @classmethod
    def closed(cls, low: float, high: float) -> "Interval":
        """[low, high]"""
        return cls(low, high)

    @classmethod
    def closed_open(cls, low: float, high: float) -> "Interval":
        """[low, high)"""
        return cls(low, high, high_closed=False)

    @classmethod
    def open_closed(cls, low: float, high: float) -> "Interval":
        """(low, high]"""
        return cls(low, high, low_closed=False)

    @classmethod
    def above(cls, low: float) -> "Interval":
        """(low, inf)"""
        return cls(low=low, low_closed=False)

    @classmethod
    def below(cls, high: float) -> "Interval":
        """(-inf, high)"""
        return cls(high=high, high_closed=False)


ANYWHERE = Interval()


class ScoringCurve:
    """
    Maps a summary statistic to a score using the first matching rule.

    Rules are evaluated top to bottom; the table should end with a rule on
    `ANYWHERE` so that every value is covered.

    Example:
        curve = ScoringCurve("peak", [
            (Interval.closed(160, 172), constant(100)),
            (ANYWHERE, lambda p: clamp((p - 120) * 2, 0, 60)),
        ])
        curve(165.0)  # 100
    """

    def __init__(self, name: str, rules: Sequence[Tuple[Interval, Formula]]):
        if not rules:
            raise ValueError(f"Scoring curve '{name}' has no rules")
        self.name = name
        self.rules = tuple(rules)

    def __call__(self, value: float) -> float:
        for interval, formula in self.rules:
            if value in interval:
                return float(formula(value))
        raise ValueError(f"Value {value} not covered by scoring curve '{self.name}'")

    def __repr__(self) -> str:
        return f"<ScoringCurve({self.name}, {len(self.rules)} rules)>"
