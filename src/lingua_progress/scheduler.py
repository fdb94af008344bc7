"""Spaced-repetition scheduling (SM-2 family) for familiarity records.

Both entry points are pure: they take the current date as an argument
(defaulting to ``date.today()``) and return a fresh :class:`SrsState`.
Level and quality ranges are checked by callers through
:meth:`FamiliarityLevel.coerce` and :meth:`ReviewQuality.coerce`.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, fields
from typing import Any

from lingua_progress.models import FamiliarityLevel, ReviewQuality, SrsState

MINIMUM_EASE = 1.3

# level -> (easiness_factor, interval, repetitions)
LEVEL_TABLE: dict[int, tuple[float, int, int]] = {
    FamiliarityLevel.UNKNOWN: (2.5, 0, 0),
    FamiliarityLevel.SEEN: (2.5, 1, 1),
    FamiliarityLevel.LEARNING: (2.5, 3, 2),
    FamiliarityLevel.FAMILIAR: (2.6, 7, 3),
    FamiliarityLevel.MASTERED: (2.7, 14, 4),
}


@dataclass(frozen=True, slots=True)
class ReviewCurve:
    """Tunable constants of :func:`apply_review`."""

    hard_multiplier: float = 1.2
    easy_bonus: float = 1.3
    again_ease_delta: float = -0.20
    hard_ease_delta: float = -0.15
    good_ease_delta: float = 0.0
    easy_ease_delta: float = 0.15
    first_hard_interval: int = 1
    first_good_interval: int = 3
    first_easy_interval: int = 7
    max_ease: float = 3.5
    max_interval: int = 36500

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> ReviewCurve:
        """Build a curve from a mapping, ignoring unknown keys."""
        known = {f.name: f.type for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            kwargs[key] = int(value) if known[key] == "int" else float(value)
        return cls(**kwargs)

    def ease_delta(self, quality: ReviewQuality) -> float:
        return {
            ReviewQuality.AGAIN: self.again_ease_delta,
            ReviewQuality.HARD: self.hard_ease_delta,
            ReviewQuality.GOOD: self.good_ease_delta,
            ReviewQuality.EASY: self.easy_ease_delta,
        }[quality]


DEFAULT_CURVE = ReviewCurve()


def initialize_from_level(
    level: int,
    today: dt.date | None = None,
) -> SrsState:
    """Initial SRS parameters for a word the user rated at *level* (1..5)."""
    today = today or dt.date.today()
    ease, interval, repetitions = LEVEL_TABLE[FamiliarityLevel(level)]
    return SrsState(
        familiarity_level=int(level),
        easiness_factor=ease,
        interval=interval,
        repetitions=repetitions,
        next_review_date=today + dt.timedelta(days=interval),
        last_review_date=None,
    )


def level_for_interval(interval: int) -> int:
    """Familiarity level implied by an interval, mirroring LEVEL_TABLE."""
    level = FamiliarityLevel.UNKNOWN
    for candidate, (_, threshold, _) in LEVEL_TABLE.items():
        if interval >= threshold:
            level = candidate
    return int(level)


def _next_interval(
    prev: int,
    ease: float,
    quality: ReviewQuality,
    curve: ReviewCurve,
) -> int:
    if quality == ReviewQuality.AGAIN:
        return 0
    if prev <= 0:
        hard = curve.first_hard_interval
        good = max(hard, curve.first_good_interval)
        easy = max(good, curve.first_easy_interval)
    else:
        ease = min(max(ease, MINIMUM_EASE), curve.max_ease)
        hard = max(1, round(prev * curve.hard_multiplier))
        good = max(hard, round(prev * ease))
        easy = max(good, round(prev * ease * curve.easy_bonus))
    chosen = {
        ReviewQuality.HARD: hard,
        ReviewQuality.GOOD: good,
        ReviewQuality.EASY: easy,
    }[quality]
    return min(chosen, curve.max_interval)


def apply_review(
    state: SrsState,
    quality: int,
    today: dt.date | None = None,
    curve: ReviewCurve = DEFAULT_CURVE,
) -> SrsState:
    """Return the SRS state after answering a review with *quality* (1..4).

    Again resets repetitions and schedules the word for today. Hard, Good
    and Easy grow the interval by increasing multipliers, so the interval
    never decreases as quality rises. The ease factor never drops below 1.3.
    """
    today = today or dt.date.today()
    quality = ReviewQuality(quality)

    interval = _next_interval(state.interval, state.easiness_factor, quality, curve)
    if quality == ReviewQuality.AGAIN:
        repetitions = 0
    else:
        repetitions = state.repetitions + 1
    ease = min(
        curve.max_ease,
        max(MINIMUM_EASE, state.easiness_factor + curve.ease_delta(quality)),
    )

    return SrsState(
        familiarity_level=level_for_interval(interval),
        easiness_factor=round(ease, 4),
        interval=interval,
        repetitions=repetitions,
        next_review_date=today + dt.timedelta(days=interval),
        last_review_date=today,
    )
