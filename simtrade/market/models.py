"""Market data models — typed representations of provider price data."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PricePoint:
    """A single daily close."""

    date: str  # ISO-8601 date, e.g. "2025-01-10"
    close: float
