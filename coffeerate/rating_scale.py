"""
Conversion between domain rating scores and their stored representation.

Scores live on a 1.0-5.0 scale in 0.5 steps; the database keeps them as
doubled small integers (2..10) so that no fractional column is needed.
"""

from __future__ import annotations

import math
from numbers import Real

MIN_STORED = 2
MAX_STORED = 10

RATING_SCORES: tuple[float, ...] = tuple(v / 2 for v in range(MIN_STORED, MAX_STORED + 1))


class RatingScaleError(ValueError):
    """Raised when a score cannot be mapped to or from storage."""


def to_storage(score: float) -> int:
    """Convert a domain score (e.g. 3.5) into its stored value (e.g. 7)."""
    if isinstance(score, bool) or not isinstance(score, Real):
        raise RatingScaleError(f"Invalid rating score: {score!r}")
    doubled = float(score) * 2
    if not math.isfinite(doubled):
        raise RatingScaleError(f"Invalid rating score: {score!r}")
    value = round(doubled)
    if doubled != value or value < MIN_STORED or value > MAX_STORED:
        raise RatingScaleError(f"Invalid rating score for storage: {score!r}")
    return value


def from_storage(value: int) -> float:
    """Convert a stored value (e.g. 7) back into a domain score (e.g. 3.5)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise RatingScaleError(f"Invalid stored rating value: {value!r}")
    if value < MIN_STORED or value > MAX_STORED:
        raise RatingScaleError(f"Invalid stored rating value: {value!r}")
    return value / 2
