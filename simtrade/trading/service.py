"""AutoTradingService — the operations exposed to the HTTP layer and CLI.

Wires the signal engine, aggregator, executor, sanitizer and scheduler
together from one ``Config`` and presents them as a small async façade.
"""

import asyncio
import logging
from typing import Optional

from simtrade.config import Config
from simtrade.errors import UserNotFound
from simtrade.market.yahoo_client import YahooChartClient
from simtrade.repos.ledger_repo import LedgerRepo
from simtrade.repos.portfolio_repo import PortfolioRepo
from simtrade.repos.transaction_repo import TransactionRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.repos.watchlist_repo import WatchlistRepo
from simtrade.strategy.aggregator import PortfolioSignalAggregator
from simtrade.strategy.mean_reversion import MeanReversionSignalEngine, interpret
from simtrade.strategy.models import SignalBatch
from simtrade.trading.executor import AutoTradeExecutor, UserLocks
from simtrade.trading.sanitizer import PortfolioSanitizer, SanitizeReport
from simtrade.trading.scheduler import SessionRegistry, TradingScheduler

logger = logging.getLogger("simtrade")


class AutoTradingService:
    """Façade over the trading components.

    Args:
        users: ``UserRepo``.
        portfolios: ``PortfolioRepo``.
        watchlists: ``WatchlistRepo``.
        transactions: ``TransactionRepo``.
        engine: Display-path ``MeanReversionSignalEngine``.
        aggregator: ``PortfolioSignalAggregator`` over *engine*.
        executor: ``AutoTradeExecutor``.
        sanitizer: ``PortfolioSanitizer``.
        scheduler: ``TradingScheduler``.
    """

    def __init__(
        self,
        users: UserRepo,
        portfolios: PortfolioRepo,
        watchlists: WatchlistRepo,
        transactions: TransactionRepo,
        engine: MeanReversionSignalEngine,
        aggregator: PortfolioSignalAggregator,
        executor: AutoTradeExecutor,
        sanitizer: PortfolioSanitizer,
        scheduler: TradingScheduler,
    ) -> None:
        self._users = users
        self._portfolios = portfolios
        self._watchlists = watchlists
        self._transactions = transactions
        self.engine = engine
        self.aggregator = aggregator
        self.executor = executor
        self.sanitizer = sanitizer
        self.scheduler = scheduler

    async def _require_user(self, user_email: str):
        user = await asyncio.to_thread(self._users.find_by_email, user_email)
        if user is None:
            raise UserNotFound(f"User not found: {user_email}")
        return user

    # ── Auto-trading lifecycle ───────────────────────────────────────────

    async def start_auto_trading(self, user_email: str) -> bool:
        """Start the scheduler for a known user.  Raises ``UserNotFound``."""
        await self._require_user(user_email)
        return await self.scheduler.start(user_email)

    def stop_auto_trading(self, user_email: str) -> bool:
        return self.scheduler.stop(user_email)

    def is_auto_trading_active(self, user_email: str) -> bool:
        return self.scheduler.status(user_email)

    def auto_trading_status(self, user_email: str) -> dict:
        return self.scheduler.status_detail(user_email)

    async def shutdown(self) -> None:
        await self.scheduler.shutdown()

    # ── Signals ──────────────────────────────────────────────────────────

    async def get_signals(self, user_email: str) -> SignalBatch:
        """Ranked signals for the user's holdings, watch-lists included.

        Sanitizes the portfolio first.  Raises ``UserNotFound``.
        """
        user = await self._require_user(user_email)
        await self.sanitizer.sanitize(user.id)

        portfolio = await asyncio.to_thread(self._portfolios.get, user.id)
        holdings = [
            {"symbol": h.symbol, "quantity": h.quantity}
            for h in (portfolio.valid_holdings if portfolio else [])
        ]
        batch = await self.aggregator.analyze(holdings)

        held = {h["symbol"] for h in holdings}
        already = {s.symbol for s in batch.signals} | held
        watch = await asyncio.to_thread(self._watchlists.get_symbols, user.id)
        extra = [s for s in watch if s not in already]
        if extra:
            batch = batch.merge(await self.aggregator.analyze_watch(extra))
        return batch

    async def test_signal(self, symbol: str) -> Optional[dict]:
        """Single-symbol signal with its parameters, or ``None`` if unavailable."""
        signal = await self.engine.compute_signal(symbol)
        if signal is None:
            return None
        return {
            **signal.to_dict(),
            "lookback_days": self.engine.lookback_days,
            "std_dev_threshold": self.engine.std_dev_threshold,
            "interpretation": interpret(signal, self.engine.std_dev_threshold),
        }

    # ── Portfolio maintenance ────────────────────────────────────────────

    async def cleanup_portfolio(self, user_id: int) -> SanitizeReport:
        """Run the sanitizer for *user_id*.  Raises ``UserNotFound``."""
        report = await self.sanitizer.sanitize(user_id)
        if report.failed:
            logger.warning(
                "Cleanup for user %s left %d holding(s) unsaved",
                user_id, len(report.failed),
            )
        return report

    # ── Ledger ───────────────────────────────────────────────────────────

    async def get_transactions(self, user_email: str, limit: int = 50) -> dict:
        """Recent transactions and spend/earn totals.  Raises ``UserNotFound``."""
        await self._require_user(user_email)
        txns = await asyncio.to_thread(
            self._transactions.list_for_user, user_email, limit,
        )
        totals = await asyncio.to_thread(self._transactions.get_totals, user_email)
        return {
            "transactions": [t.to_dict() for t in txns],
            **totals,
        }


def build_service(
    config: Config,
    provider=None,
    registry: Optional[SessionRegistry] = None,
) -> AutoTradingService:
    """Construct every component from *config*.

    Args:
        config: Application configuration.
        provider: Price-history provider; a ``YahooChartClient`` by default.
        registry: Session registry for the scheduler.
    """
    if provider is None:
        provider = YahooChartClient(config)

    users = UserRepo(config.db_path)
    portfolios = PortfolioRepo(config.db_path)
    locks = UserLocks()

    # Display and execution share the window and threshold; only the
    # confidence gate differs (display floor vs. scheduler threshold).
    engine = MeanReversionSignalEngine(
        provider,
        lookback_days=config.lookback_days,
        std_dev_threshold=config.std_dev_threshold,
        min_confidence=config.display_min_confidence,
        timeout=config.provider_timeout_seconds,
    )
    aggregator = PortfolioSignalAggregator(engine, config.watchlist)
    executor = AutoTradeExecutor(LedgerRepo(config.db_path), locks)
    sanitizer = PortfolioSanitizer(
        portfolios, users, locks,
        fallback_price=config.fallback_purchase_price,
    )
    scheduler = TradingScheduler(
        users,
        portfolios,
        aggregator,
        executor,
        registry=registry,
        check_interval=config.check_interval_seconds,
        min_confidence=config.auto_min_confidence,
        max_position_size=config.max_position_size,
    )
    return AutoTradingService(
        users=users,
        portfolios=portfolios,
        watchlists=WatchlistRepo(config.db_path),
        transactions=TransactionRepo(config.db_path),
        engine=engine,
        aggregator=aggregator,
        executor=executor,
        sanitizer=sanitizer,
        scheduler=scheduler,
    )
