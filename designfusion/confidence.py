"""Confidence score arithmetic shared by every analysis stage.

All scores in the framework live in the closed interval [0, 1]. These helpers
are the only place where scores are clamped, averaged or boosted, so the
bounds hold no matter how malformed an analyzer's output was.
"""

import math
from typing import Any, Iterable

AGREEMENT_BOOST = 0.15
"""Confidence added per independent source that agrees on an entity."""

MAX_AGREEMENT = 2
"""Agreement counts above this value do not raise confidence further."""


def clamp01(value: Any) -> float:
    """Clamp a confidence value into [0, 1].

    ``None``, NaN and values that cannot be read as a number all map to 0.0,
    so a bad score never propagates downstream.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    except OverflowError:
        # Integers too large for a float clamp like infinities.
        return 1.0 if value > 0 else 0.0
    if math.isnan(number):
        return 0.0
    return max(0.0, min(1.0, number))


def average(values: Iterable[float]) -> float:
    """Arithmetic mean of confidence values; 0.0 for an empty input."""
    items = [clamp01(v) for v in values]
    if not items:
        return 0.0
    return sum(items) / len(items)


def boost(base: float, agreement_count: int) -> float:
    """Raise a confidence score for agreement between independent sources.

    Args:
        base: The confidence before agreement is taken into account.
        agreement_count: Number of additional sources that agree. Capped at
            ``MAX_AGREEMENT``; negative counts are treated as zero.

    Returns:
        ``clamp01(base + AGREEMENT_BOOST * agreement_count)``.
    """
    count = max(0, min(int(agreement_count), MAX_AGREEMENT))
    return clamp01(clamp01(base) + AGREEMENT_BOOST * count)
