"""Mean-reversion signal engine — scores a symbol against its recent closes.

A close far above the rolling mean is read as overbought (SELL), far below
as oversold (BUY).  Confidence is the z-score magnitude normalised by the
threshold and clamped to 1.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from simtrade.errors import DataUnavailable
from simtrade.strategy.base import PriceHistoryProvider
from simtrade.strategy.models import Signal, SignalType
from simtrade.strategy.statistics import (
    calculate_mean,
    calculate_std_dev,
    calculate_z_score,
    usable_closes,
)

logger = logging.getLogger("simtrade.signals")


def evaluate_window(
    symbol: str,
    closes: list[float],
    *,
    std_dev_threshold: float = 1.0,
    min_confidence: float = 0.2,
) -> Signal:
    """Score the last close of *closes* against the window's distribution.

    Rules:
        1. ``std_dev == 0`` → HOLD with confidence 0.
        2. ``confidence = min(1, |z| / std_dev_threshold)``.
        3. ``confidence < min_confidence`` → HOLD with confidence 0.
        4. ``z > threshold`` → SELL; ``z < -threshold`` → BUY; else HOLD.

    Raises ``DataUnavailable`` with fewer than 2 closes.
    """
    if len(closes) < 2:
        raise DataUnavailable(symbol, f"need at least 2 closes, got {len(closes)}")

    mean = calculate_mean(closes)
    std_dev = calculate_std_dev(closes)
    current_price = closes[-1]
    z_score = calculate_z_score(current_price, mean, std_dev)

    if z_score is None:
        return Signal(
            symbol=symbol,
            signal=SignalType.HOLD,
            confidence=0.0,
            current_price=current_price,
            mean=mean,
            std_dev=std_dev,
            z_score=None,
        )

    confidence = min(1.0, abs(z_score) / std_dev_threshold)
    signal = SignalType.HOLD

    if confidence < min_confidence:
        confidence = 0.0
    elif z_score > std_dev_threshold:
        signal = SignalType.SELL
    elif z_score < -std_dev_threshold:
        signal = SignalType.BUY

    return Signal(
        symbol=symbol,
        signal=signal,
        confidence=confidence,
        current_price=current_price,
        mean=mean,
        std_dev=std_dev,
        z_score=z_score,
    )


def interpret(signal: Signal, std_dev_threshold: float = 1.0) -> str:
    """Plain-language reading of a signal's z-score."""
    if signal.z_score is not None and signal.z_score > std_dev_threshold:
        return "Stock is significantly overvalued"
    if signal.z_score is not None and signal.z_score < -std_dev_threshold:
        return "Stock is significantly undervalued"
    return "Stock is trading near its mean"


class MeanReversionSignalEngine:
    """Fetches a price window per symbol and scores it.

    Args:
        provider: A ``PriceHistoryProvider``.
        lookback_days: Number of most recent trading days in the window.
        std_dev_threshold: Z-score magnitude that triggers BUY/SELL.
        min_confidence: Confidence floor below which the signal is HOLD/0.
        timeout: Seconds allowed for one provider call.
    """

    def __init__(
        self,
        provider: PriceHistoryProvider,
        lookback_days: int = 20,
        std_dev_threshold: float = 1.0,
        min_confidence: float = 0.2,
        timeout: float = 10.0,
    ) -> None:
        self._provider = provider
        self.lookback_days = lookback_days
        self.std_dev_threshold = std_dev_threshold
        self.min_confidence = min_confidence
        self._timeout = timeout

    def _window_bounds(self, now: datetime) -> tuple[datetime, datetime]:
        # Weekends plus a margin for market holidays.
        calendar_days = math.ceil(self.lookback_days * 7 / 5) + 7
        return now - timedelta(days=calendar_days), now

    async def fetch_signal(
        self, symbol: str, now: Optional[datetime] = None,
    ) -> Signal:
        """Compute the signal for *symbol*.

        Raises ``DataUnavailable`` on provider failure, timeout, or fewer
        than 2 usable closes.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        start, end = self._window_bounds(now)

        try:
            points = await asyncio.wait_for(
                self._provider.fetch_daily_closes(symbol, start, end),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise DataUnavailable(
                symbol, f"provider timed out after {self._timeout:.0f}s",
            ) from exc
        except Exception as exc:
            raise DataUnavailable(symbol, f"provider error: {exc}") from exc

        closes = usable_closes([p.close for p in points or []])
        closes = closes[-self.lookback_days:]
        return evaluate_window(
            symbol,
            closes,
            std_dev_threshold=self.std_dev_threshold,
            min_confidence=self.min_confidence,
        )

    async def compute_signal(
        self, symbol: str, now: Optional[datetime] = None,
    ) -> Optional[Signal]:
        """Like :meth:`fetch_signal` but returns ``None`` when unavailable."""
        try:
            return await self.fetch_signal(symbol, now=now)
        except DataUnavailable as exc:
            logger.info("No signal for %s: %s", symbol, exc.reason)
            return None
