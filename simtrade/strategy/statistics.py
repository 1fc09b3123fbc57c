"""Distribution statistics — mean, population std-dev, z-score. Pure functions, no I/O."""

import math
import statistics
from typing import Optional


def calculate_mean(prices: list[float]) -> float:
    """Arithmetic mean of *prices*.

    Raises ``ValueError`` on an empty list.
    """
    if not prices:
        raise ValueError("Need at least 1 price for a mean, got 0")
    return statistics.fmean(prices)


def calculate_std_dev(prices: list[float]) -> float:
    """Population standard deviation (divides by N, not N − 1).

    Exactly 0.0 for a constant series, whatever its float representation.
    """
    if not prices:
        raise ValueError("Need at least 1 price for a standard deviation, got 0")
    return statistics.pstdev(prices)


def calculate_z_score(value: float, mean: float, std_dev: float) -> Optional[float]:
    """Distance of *value* from *mean* in standard deviations.

    Returns ``None`` when *std_dev* is zero (undefined).
    """
    if std_dev == 0:
        return None
    return (value - mean) / std_dev


def usable_closes(closes: list[Optional[float]]) -> list[float]:
    """Drop ``None``, NaN, infinite and non-positive closes."""
    return [
        float(c) for c in closes
        if c is not None and math.isfinite(c) and c > 0
    ]
