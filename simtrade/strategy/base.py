"""Provider protocol for price history.

Defines the interface the signal engine consumes.  ``YahooChartClient``
implements it; tests substitute duck-typed fakes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from simtrade.market.models import PricePoint


@runtime_checkable
class PriceHistoryProvider(Protocol):
    """Interface that all price-history sources must satisfy."""

    async def fetch_daily_closes(
        self, symbol: str, start: datetime, end: datetime,
    ) -> list[PricePoint]:
        """Return daily closes for *symbol*, oldest first.  May raise."""
        ...
