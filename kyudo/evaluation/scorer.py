"""Kyudo form scoring over a sequence of per-frame angle records."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from kyudo.evaluation.curves import (
    ANYWHERE,
    Interval,
    ScoringCurve,
    clamp,
    constant,
    linear,
    round_half_up,
)
from kyudo.pose.geometry import METRIC_NAMES, AngleRecord

logger = logging.getLogger(__name__)

# A metric needs more than this many valid samples to be scored
MIN_SAMPLES = 5
MIN_SMOOTHNESS_SAMPLES = 10

NOMINAL_FPS = 30.0
# Share of the recording assumed to be kai (the hold at full draw)
KAI_FRACTION = 0.33

UNRATED = "unrated"

RANK_BANDS: Tuple[Tuple[int, str], ...] = (
    (90, "yondan-godan"),
    (78, "sandan"),
    (65, "nidan"),
    (52, "shodan"),
    (38, "kyu"),
)
LOWEST_RANK = "fundamentals"


class CommentTier(Enum):
    """Qualitative verdict attached to each evaluation item."""
    GOOD = "good"
    CAUTION = "caution"
    POOR = "poor"


@dataclass(frozen=True)
class EvaluationItem:
    """
    Score for a single form criterion.

    Attributes:
        criterion: Stable criterion identifier.
        label: Human-readable criterion name.
        score: Score in [0, 100].
        tier: Qualitative verdict.
        comment: Feedback text for the verdict.
        rationale: Kyudo teaching the criterion is based on.
        ideal: Ideal range of the measured statistic.
    """
    criterion: str
    label: str
    score: int
    tier: CommentTier
    comment: str
    rationale: str
    ideal: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "criterion": self.criterion,
            "label": self.label,
            "score": self.score,
            "tier": self.tier.value,
            "comment": self.comment,
            "rationale": self.rationale,
            "ideal": self.ideal,
        }


@dataclass(frozen=True)
class EvaluationReport:
    """
    Overall form evaluation.

    Attributes:
        score: Rounded mean of the item scores (0 when nothing was scored).
        rank: Rank tier for the score.
        items: Scored criteria, in evaluation order.
    """
    score: int = 0
    rank: str = UNRATED
    items: Tuple[EvaluationItem, ...] = field(default_factory=tuple)

    def get_item(self, criterion: str) -> Optional[EvaluationItem]:
        """Get an item by criterion id."""
        for item in self.items:
            if item.criterion == criterion:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary format."""
        return {
            "score": self.score,
            "rank": self.rank,
            "items": [item.to_dict() for item in self.items],
        }


Stats = Dict[str, float]
TierRule = Tuple[Callable[[Stats], bool], CommentTier, str]


@dataclass(frozen=True)
class Criterion:
    """
    Static description of a form criterion.

    Attributes:
        id: Stable identifier.
        label: Human-readable name.
        rationale: Kyudo teaching the criterion is based on.
        ideal: Ideal range text.
        tiers: Ordered (predicate, tier, comment) rules over the raw
            statistics; the first matching rule wins.
        measure: Computes (raw score, statistics) from the valid samples,
            or None when there is not enough data.
    """
    id: str
    label: str
    rationale: str
    ideal: str
    tiers: Sequence[TierRule]
    measure: Callable[["_Samples"], Optional[Tuple[float, Stats]]]

    def comment_for(self, stats: Stats) -> Tuple[CommentTier, str]:
        for predicate, tier, comment in self.tiers:
            if predicate(stats):
                return tier, comment
        raise ValueError(f"No comment tier matched for criterion '{self.id}'")


def _always(_stats: Stats) -> bool:
    return True


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean (0 for an empty sequence)."""
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def pstdev(values: Sequence[float]) -> float:
    """Population standard deviation (0 for fewer than two samples)."""
    if len(values) < 2:
        return 0.0
    return float(np.std(values))


def tail(values: Sequence[float], start_fraction: float) -> List[float]:
    """Slice starting at floor(len * start_fraction)."""
    return list(values[int(len(values) * start_fraction):])


class _Samples:
    """Valid (non-None) values per metric, in frame order."""

    def __init__(self, records: Sequence[AngleRecord], nominal_fps: float):
        self.frame_count = len(records)
        self.nominal_fps = nominal_fps
        self._values: Dict[str, List[float]] = {
            name: [getattr(r, name) for r in records if getattr(r, name) is not None]
            for name in METRIC_NAMES
        }

    def __getitem__(self, metric: str) -> List[float]:
        return self._values[metric]


# ---------------------------------------------------------------------------
# Scoring curves
# ---------------------------------------------------------------------------

OSHIDE_CURVE = ScoringCurve("oshide_peak", [
    (Interval.closed(160, 172), constant(100)),
    (Interval.closed_open(150, 160), linear(60, 150, 4)),
    (Interval.open_closed(172, 178), linear(100, 172, -10)),
    (Interval.above(178), constant(40)),
    (ANYWHERE, lambda peak: clamp((peak - 120) * 2, 0, 60)),
])

METE_CURVE = ScoringCurve("mete_late_mean", [
    (Interval.closed(80, 110), constant(100)),
    (Interval.open_closed(110, 125), linear(100, 110, -3)),
    (Interval.above(125), lambda avg: clamp(100 - (avg - 110) * 5, 0, 55)),
    (ANYWHERE, lambda avg: clamp(80 + (avg - 70) * 2, 0, 80)),
])

MONOMI_CURVE = ScoringCurve("monomi_mean", [
    (Interval.closed(35, 55), constant(100)),
    (Interval.closed_open(25, 35), linear(60, 25, 4)),
    (Interval.open_closed(55, 68), linear(100, 55, -4)),
    (Interval.below(25), lambda avg: clamp(avg * 2.4, 0, 60)),
    (ANYWHERE, lambda avg: clamp(100 - (avg - 55) * 6, 0, 60)),
])

KUCHIWARI_CURVE = ScoringCurve("kuchiwari_mean", [
    (Interval.closed(-0.01, 0.03), constant(100)),
    (Interval.open_closed(0.03, 0.07), linear(100, 0.03, -1000)),
    (Interval.closed_open(-0.05, -0.01), linear(100, -0.01, 1000)),
    (ANYWHERE, lambda avg: clamp(50 - abs(avg) * 500, 0, 50)),
])

KAI_BONUS_CURVE = ScoringCurve("kai_seconds", [
    (Interval(low=3.0), constant(0)),
    (Interval(low=1.5), constant(-10)),
    (ANYWHERE, constant(-25)),
])


def penalty(value: float, weight: float) -> float:
    """`clamp(100 - value * weight)`, the shared shape of consistency sub-scores."""
    return clamp(100 - value * weight)


# ---------------------------------------------------------------------------
# Measures
# ---------------------------------------------------------------------------

def _measure_oshide(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["left_elbow"]
    if len(values) <= MIN_SAMPLES:
        return None
    peak = max(values)
    return OSHIDE_CURVE(peak), {"peak": peak}


def _measure_mete(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["right_elbow"]
    if len(values) <= MIN_SAMPLES:
        return None
    avg = mean(tail(values, 0.5))
    return METE_CURVE(avg), {"mean": avg}


def _measure_symmetry(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    left, right = samples["left_shoulder"], samples["right_shoulder"]
    if len(left) <= MIN_SAMPLES or len(right) <= MIN_SAMPLES:
        return None
    diff = abs(mean(left) - mean(right))
    stability = (pstdev(left) + pstdev(right)) / 2
    score = penalty(diff, 3) * 0.6 + penalty(stability, 3) * 0.4
    return score, {"diff": diff, "stability": stability}


def _measure_hip_line(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["hip_tilt"]
    if len(values) <= MIN_SAMPLES:
        return None
    avg, std = mean(values), pstdev(values)
    return penalty(avg, 9) * 0.65 + penalty(std, 6) * 0.35, {"mean": avg, "std": std}


def _measure_spine(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["spine_tilt"]
    if len(values) <= MIN_SAMPLES:
        return None
    avg, std = mean(values), pstdev(values)
    return penalty(avg, 7) * 0.65 + penalty(std, 5) * 0.35, {"mean": avg, "std": std}


def _measure_kai(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    late_left = tail(samples["left_elbow"], 0.55)
    late_right = tail(samples["right_elbow"], 0.55)
    if len(late_left) <= MIN_SAMPLES or len(late_right) <= MIN_SAMPLES:
        return None
    avg_std = (pstdev(late_left) + pstdev(late_right)) / 2
    kai_seconds = samples.frame_count / samples.nominal_fps * KAI_FRACTION
    bonus = KAI_BONUS_CURVE(kai_seconds)
    score = clamp(100 - avg_std * 5 + bonus)
    return score, {"avg_std": avg_std, "kai_seconds": kai_seconds, "bonus": bonus}


def _measure_smoothness(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["left_elbow"]
    if len(values) <= MIN_SMOOTHNESS_SAMPLES:
        return None
    deltas = np.abs(np.diff(np.asarray(values, dtype=float)))
    delta_std = pstdev(deltas)
    delta_mean = mean(deltas)
    score = clamp(100 - delta_std * 18 - max(0.0, delta_mean - 1.5) * 10)
    return score, {"score": score, "delta_std": delta_std, "delta_mean": delta_mean}


def _measure_monomi(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["monomi_angle"]
    if len(values) <= MIN_SAMPLES:
        return None
    late = tail(values, 0.3)
    avg, std = mean(late), pstdev(late)
    score = MONOMI_CURVE(avg) * 0.65 + penalty(std, 5) * 0.35
    return score, {"mean": avg, "std": std}


def _measure_kuchiwari(samples: _Samples) -> Optional[Tuple[float, Stats]]:
    values = samples["kuchiwari_offset"]
    if len(values) <= MIN_SAMPLES:
        return None
    late = tail(values, 0.5)
    avg, std = mean(late), pstdev(late)
    score = KUCHIWARI_CURVE(avg) * 0.7 + penalty(std, 1000) * 0.3
    return score, {"mean": avg, "std": std}


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------

GOOD, CAUTION, POOR = CommentTier.GOOD, CommentTier.CAUTION, CommentTier.POOR

CRITERIA: Tuple[Criterion, ...] = (
    Criterion(
        id="oshide_elbow",
        label="Bow-hand (left elbow) extension",
        rationale=(
            "Kyudo Kyohon: locking the elbow completely stiffens the bow-hand "
            "shoulder and lets the string-hand shoulder slip backwards."
        ),
        ideal="Peak angle at full draw 160-172°",
        tiers=(
            (lambda s: 160 <= s["peak"] <= 172, GOOD, "The bow arm is extended correctly."),
            (lambda s: s["peak"] > 178, POOR, "The bow arm is over-extended (risk of the string striking the arm)."),
            (lambda s: s["peak"] > 172, CAUTION, "The bow arm is slightly over-extended."),
            (lambda s: s["peak"] >= 150, CAUTION, "The bow arm is slightly under-extended."),
            (_always, POOR, "The bow-hand elbow is clearly bent."),
        ),
        measure=_measure_oshide,
    ),
    Criterion(
        id="mete_elbow",
        label="String-hand (right elbow) settling",
        rationale="Riron Kyudo: an elbow that settles forward almost always leads to a loose release.",
        ideal="Elbow angle in the second half of the draw 80-110°",
        tiers=(
            (lambda s: 80 <= s["mean"] <= 110, GOOD, "The string-hand elbow settles correctly."),
            (lambda s: s["mean"] > 125, POOR, "The string-hand elbow settles forward; risk of a loose release."),
            (lambda s: s["mean"] > 110, CAUTION, "The string-hand elbow settles slightly forward."),
            (_always, CAUTION, "Check the drawing motion (hikiwake)."),
        ),
        measure=_measure_mete,
    ),
    Criterion(
        id="draw_symmetry",
        label="Left/right balance of the draw",
        rationale=(
            "Kyudo Kyohon: open to both sides from the centre line of the chest, "
            "entering the bow with the body."
        ),
        ideal="Left/right shoulder angle difference within 8°",
        tiers=(
            (lambda s: s["diff"] <= 8 and s["stability"] <= 10, GOOD, "The draw is balanced left and right."),
            (lambda s: s["diff"] <= 15, CAUTION, "There is a slight left/right imbalance."),
            (_always, POOR, "There is a large left/right imbalance."),
        ),
        measure=_measure_symmetry,
    ),
    Criterion(
        id="sanju_jumonji",
        label="Sanju-jumonji (level shoulder and hip lines)",
        rationale="Kyudo glossary: feet, hips and shoulders line up as a single plane seen from above.",
        ideal="Hip line tilt within 4°",
        tiers=(
            (lambda s: s["mean"] <= 4 and s["std"] <= 4, GOOD, "Sanju-jumonji is stable."),
            (lambda s: s["mean"] <= 7, CAUTION, "There is a slight tilt."),
            (lambda s: s["mean"] <= 13, POOR, "The tilt is noticeable."),
            (_always, POOR, "Sanju-jumonji has broken down."),
        ),
        measure=_measure_hip_line,
    ),
    Criterion(
        id="dozukuri",
        label="Dozukuri (vertical torso)",
        rationale=(
            "Kyudo Kyohon: keep the centre of gravity in the middle of the body "
            "and build a vertical axis that leans neither forward, back nor sideways."
        ),
        ideal="Spine tilt within 4°",
        tiers=(
            (lambda s: s["mean"] <= 4 and s["std"] <= 5, GOOD, "Dozukuri is kept correctly."),
            (lambda s: s["mean"] <= 8, CAUTION, "The torso tends to lean in or rise slightly."),
            (lambda s: s["mean"] <= 14, POOR, "The torso tilt is large."),
            (_always, POOR, "Dozukuri has broken down."),
        ),
        measure=_measure_spine,
    ),
    Criterion(
        id="kai_stability",
        label="Stability of kai (tsumeai and nobiai)",
        rationale=(
            "Kyudo Kyohon: stretch fully in a cross at full draw. "
            "Holding kai for less than three seconds suggests hayake (early release)."
        ),
        ideal="Angle variation in the late frames within 4°, estimated kai of 3 s or more",
        tiers=(
            (lambda s: s["avg_std"] <= 4 and s["bonus"] == 0, GOOD, "Kai is full and steady."),
            (lambda s: s["bonus"] == -25, POOR, "Possible hayake; hold kai for at least three seconds."),
            (lambda s: s["avg_std"] <= 9, CAUTION, "There is some movement during kai."),
            (_always, POOR, "Kai is clearly unstable."),
        ),
        measure=_measure_kai,
    ),
    Criterion(
        id="draw_smoothness",
        label="Smoothness of the draw",
        rationale="Kyudo Kyohon: draw evenly left and right, without hurrying or hesitating.",
        ideal="Small spread of the frame-to-frame angle change",
        tiers=(
            (lambda s: s["score"] >= 82, GOOD, "The draw is smooth and even."),
            (lambda s: s["score"] >= 62, CAUTION, "The draw catches slightly."),
            (_always, POOR, "Check for a grabbing draw or a stop partway through."),
        ),
        measure=_measure_smoothness,
    ),
    Criterion(
        id="monomi",
        label="Monomi (head direction and stability)",
        rationale=(
            "Kyudo Kyohon: a monomi of about 45° is ideal. "
            "A shallow monomi makes the point of aim unreliable."
        ),
        ideal="Ear line to shoulder line difference 35-55°, variation within 6°",
        tiers=(
            (lambda s: 35 <= s["mean"] <= 55 and s["std"] <= 6, GOOD, "Monomi is at the right angle and steady."),
            (lambda s: s["mean"] < 25, POOR, "Monomi is far too shallow."),
            (lambda s: s["mean"] < 35, CAUTION, "Monomi is slightly shallow."),
            (lambda s: s["mean"] > 68, CAUTION, "Monomi is too deep."),
            (lambda s: s["std"] > 10, CAUTION, "Monomi moves during the draw."),
            (_always, CAUTION, "Check the monomi angle."),
        ),
        measure=_measure_monomi,
    ),
    Criterion(
        id="kuchiwari",
        label="Kuchiwari (right wrist height)",
        rationale=(
            "Kyudo Kyohon: at kai the right hand settles at mouth height; "
            "keeping it constant every shot stabilises where the arrow lands."
        ),
        ideal="Right wrist within about ±2 cm of mouth height (normalized offset -0.01 to +0.03)",
        tiers=(
            (lambda s: -0.01 <= s["mean"] <= 0.03 and s["std"] <= 0.02, GOOD, "Kuchiwari is steady at the right height."),
            (lambda s: s["mean"] > 0.05, POOR, "Kuchiwari is too low (the arrow tends to fly high)."),
            (lambda s: s["mean"] > 0.03, CAUTION, "Kuchiwari is slightly low."),
            (lambda s: s["mean"] < -0.05, POOR, "Kuchiwari is too high."),
            (lambda s: s["mean"] < -0.01, CAUTION, "Kuchiwari is slightly high."),
            (lambda s: s["std"] > 0.02, CAUTION, "Kuchiwari moves during the draw."),
            (_always, CAUTION, "Check the kuchiwari position."),
        ),
        measure=_measure_kuchiwari,
    ),
)


def rank_for(score: int) -> str:
    """Rank tier for an overall score."""
    for threshold, rank in RANK_BANDS:
        if score >= threshold:
            return rank
    return LOWEST_RANK


def evaluate(
    records: Sequence[AngleRecord],
    nominal_fps: float = NOMINAL_FPS,
) -> EvaluationReport:
    """
    Score a kyudo draw from its per-frame angle records.

    Criteria without enough valid samples are left out of the report. The
    result depends only on the input sequence.

    Args:
        records: Angle records in frame order.
        nominal_fps: Frame rate assumed when estimating the kai duration.

    Returns:
        EvaluationReport (score 0 and rank "unrated" when nothing could be
        scored).
    """
    if not records:
        return EvaluationReport()

    samples = _Samples(records, nominal_fps)
    items: List[EvaluationItem] = []

    for criterion in CRITERIA:
        measured = criterion.measure(samples)
        if measured is None:
            logger.debug(f"Not enough samples for criterion {criterion.id}")
            continue
        raw_score, stats = measured
        tier, comment = criterion.comment_for(stats)
        items.append(EvaluationItem(
            criterion=criterion.id,
            label=criterion.label,
            score=round_half_up(clamp(raw_score)),
            tier=tier,
            comment=comment,
            rationale=criterion.rationale,
            ideal=criterion.ideal,
        ))

    if not items:
        return EvaluationReport()

    total = round_half_up(sum(item.score for item in items) / len(items))
    return EvaluationReport(score=total, rank=rank_for(total), items=tuple(items))


def summarize(report: EvaluationReport) -> Mapping[str, int]:
    """Criterion id to score, for compact logging."""
    return {item.criterion: item.score for item in report.items}
