"""Portfolio signal aggregation — best-effort scoring over many symbols.

A symbol that cannot be scored is recorded in ``SignalBatch.skipped`` and
the batch carries on.
"""

import logging
from typing import Iterable, Optional

from simtrade.errors import DataUnavailable
from simtrade.strategy.mean_reversion import MeanReversionSignalEngine
from simtrade.strategy.models import (
    Signal,
    SignalBatch,
    SignalType,
    SkippedSymbol,
    rank_signals,
)

logger = logging.getLogger("simtrade.signals")


class PortfolioSignalAggregator:
    """Runs the signal engine across holdings and watch-lists.

    Args:
        engine: The ``MeanReversionSignalEngine`` used per symbol.
        watchlist: Default symbols scanned for new BUY ideas.
    """

    def __init__(
        self,
        engine: MeanReversionSignalEngine,
        watchlist: Iterable[str],
    ) -> None:
        self._engine = engine
        self.watchlist = list(watchlist)

    async def _score(self, symbol: str) -> tuple[Optional[Signal], Optional[SkippedSymbol]]:
        try:
            return await self._engine.fetch_signal(symbol), None
        except DataUnavailable as exc:
            logger.info("Skipping %s: %s", symbol, exc.reason)
            return None, SkippedSymbol(symbol, exc.reason)
        except Exception as exc:
            logger.warning("Error scoring %s: %s", symbol, exc)
            return None, SkippedSymbol(symbol, f"error: {exc}")

    async def analyze(self, holdings: list[dict]) -> SignalBatch:
        """Score every held symbol, then scan the default watch-list.

        Args:
            holdings: ``[{"symbol": str, "quantity": int}, ...]``.

        Returns:
            Held-symbol signals plus watch-list BUY signals for symbols not
            already held, ranked by confidence (highest first).
        """
        batch = SignalBatch()
        held: set[str] = set()

        for holding in holdings:
            symbol = (holding or {}).get("symbol")
            if not symbol:
                logger.info("Invalid holding entry skipped: %r", holding)
                continue
            held.add(symbol)
            signal, skipped = await self._score(symbol)
            if signal is not None:
                batch.signals.append(signal)
            if skipped is not None:
                batch.skipped.append(skipped)

        for symbol in self.watchlist:
            if symbol in held:
                continue
            signal, skipped = await self._score(symbol)
            if signal is not None and signal.signal is SignalType.BUY:
                batch.signals.append(signal)
            if skipped is not None:
                batch.skipped.append(skipped)

        batch.signals = rank_signals(batch.signals)
        logger.info(
            "Portfolio analysis: %d signal(s), %d skipped",
            len(batch.signals), len(batch.skipped),
        )
        return batch

    async def analyze_watch(self, symbols: list[str]) -> SignalBatch:
        """Score every symbol in *symbols*, keeping all sides."""
        batch = SignalBatch()
        for symbol in symbols:
            if not symbol:
                logger.info("Invalid watchlist symbol skipped")
                continue
            signal, skipped = await self._score(symbol)
            if signal is not None:
                batch.signals.append(signal)
            if skipped is not None:
                batch.skipped.append(skipped)

        batch.signals = rank_signals(batch.signals)
        return batch
