"""TradingScheduler — per-user automated trading loops.

Each active user gets one ``asyncio`` task that runs an evaluation cycle every
``check_interval`` seconds.  Sessions live in an injected ``SessionRegistry``
so tests can build isolated schedulers.

Lifecycle per user: Inactive → Active (``start``) → Inactive (``stop``, or
self-stop when the account disappears).  ``stop`` is cooperative: a cycle
already running finishes, but no new cycle starts once ``stop`` returns.
"""

import asyncio
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from simtrade.errors import StaleSession
from simtrade.models.portfolio import TradeSide
from simtrade.repos.portfolio_repo import PortfolioRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.strategy.aggregator import PortfolioSignalAggregator
from simtrade.strategy.models import SignalType, SkippedSymbol
from simtrade.trading.executor import AutoTradeExecutor

logger = logging.getLogger("simtrade.scheduler")


@dataclass
class TradingSession:
    """Process-local state for one user's automated trading."""

    user_email: str
    active: bool = True
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    cycle_count: int = 0
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    last_cycle_at: Optional[str] = None


class SessionRegistry:
    """At most one ``TradingSession`` per user, plus one cycle lock per user.

    Cycle locks are keyed by email and outlive sessions: a cycle still
    running for a stopped session blocks the first cycle of the next one.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, TradingSession] = {}
        self._cycle_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def cycle_lock(self, user_email: str) -> asyncio.Lock:
        return self._cycle_locks[user_email]

    def get(self, user_email: str) -> Optional[TradingSession]:
        return self._sessions.get(user_email)

    def add(self, session: TradingSession) -> None:
        if session.user_email in self._sessions:
            raise KeyError(f"Session already registered for {session.user_email}")
        self._sessions[session.user_email] = session

    def remove(self, session: TradingSession) -> None:
        """Remove *session* if it is still the registered one."""
        if self._sessions.get(session.user_email) is session:
            del self._sessions[session.user_email]

    def is_active(self, user_email: str) -> bool:
        session = self._sessions.get(user_email)
        return session is not None and session.active

    @property
    def user_emails(self) -> list[str]:
        return list(self._sessions.keys())


@dataclass
class CycleReport:
    """Outcome of one evaluation cycle."""

    user_email: str
    outcome: str = "ok"  # ok | stale_session | no_portfolio | no_holdings | busy | stopped | error
    signals_evaluated: int = 0
    skipped: list[SkippedSymbol] = field(default_factory=list)
    trades_attempted: int = 0
    trades_executed: int = 0
    trades: list[dict] = field(default_factory=list)


class TradingScheduler:
    """Starts, stops and runs per-user trading cycles.

    Args:
        users: ``UserRepo`` for account and credits lookups.
        portfolios: ``PortfolioRepo`` for holdings.
        aggregator: ``PortfolioSignalAggregator`` producing ranked signals.
        executor: ``AutoTradeExecutor`` applying trades.
        registry: Session registry; a fresh one is created if omitted.
        check_interval: Seconds between cycles.
        min_confidence: Confidence required to act on a signal.
        max_position_size: Fraction of credits committed to one BUY.
    """

    def __init__(
        self,
        users: UserRepo,
        portfolios: PortfolioRepo,
        aggregator: PortfolioSignalAggregator,
        executor: AutoTradeExecutor,
        registry: Optional[SessionRegistry] = None,
        check_interval: float = 300,
        min_confidence: float = 0.7,
        max_position_size: float = 0.1,
    ) -> None:
        self._users = users
        self._portfolios = portfolios
        self._aggregator = aggregator
        self._executor = executor
        self._registry = registry if registry is not None else SessionRegistry()
        self.check_interval = check_interval
        self.min_confidence = min_confidence
        self.max_position_size = max_position_size

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self, user_email: str) -> bool:
        """Activate automated trading for *user_email*.

        Runs one cycle immediately, then re-runs it every
        ``check_interval`` seconds.  Returns ``False`` if already active.
        """
        if self._registry.is_active(user_email):
            return False

        session = TradingSession(user_email=user_email)
        self._registry.add(session)
        logger.info("Auto-trading started for %s", user_email)

        # Queues behind a cycle still running from a previous session.
        await self._run_guarded(session, wait=True)

        # The first cycle may have self-stopped, or stop() may have been
        # called while it waited or ran.
        if session.active:
            session.task = asyncio.create_task(
                self._loop(session), name=f"autotrade:{user_email}",
            )
        return True

    def stop(self, user_email: str) -> bool:
        """Deactivate automated trading.  Returns ``False`` if not active."""
        session = self._registry.get(user_email)
        if session is None or not session.active:
            return False
        self._stop_session(session)
        logger.info("Auto-trading stopped for %s", user_email)
        return True

    def status(self, user_email: str) -> bool:
        """``True`` while automated trading is active for the user."""
        return self._registry.is_active(user_email)

    def status_detail(self, user_email: str) -> dict:
        """Session metadata for the status endpoint."""
        session = self._registry.get(user_email)
        if session is None or not session.active:
            return {"user_email": user_email, "active": False}
        return {
            "user_email": user_email,
            "active": True,
            "started_at": session.started_at,
            "cycle_count": session.cycle_count,
            "last_cycle_at": session.last_cycle_at,
            "check_interval_seconds": self.check_interval,
        }

    async def shutdown(self) -> None:
        """Stop every session and wait for their loops to exit."""
        tasks = []
        for email in self._registry.user_emails:
            session = self._registry.get(email)
            if session is None:
                continue
            self._stop_session(session)
            if session.task is not None:
                tasks.append(session.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scheduler shut down (%d session(s)).", len(tasks))

    def _stop_session(self, session: TradingSession) -> None:
        session.active = False
        session.stop_event.set()
        self._registry.remove(session)

    # ── Periodic loop ────────────────────────────────────────────────────

    async def _loop(self, session: TradingSession) -> None:
        while session.active:
            try:
                await asyncio.wait_for(
                    session.stop_event.wait(), timeout=self.check_interval,
                )
                break  # stop requested
            except asyncio.TimeoutError:
                pass
            if not session.active:
                break
            await self._run_guarded(session)
        logger.debug("Loop exited for %s", session.user_email)

    async def _run_guarded(
        self, session: TradingSession, wait: bool = False,
    ) -> CycleReport:
        """Run one cycle under the user's cycle lock.  Never raises.

        With ``wait=False`` a fire that finds a cycle in flight is skipped;
        with ``wait=True`` it queues behind it.  Either way nothing runs for
        a session stopped before the lock was acquired.
        """
        lock = self._registry.cycle_lock(session.user_email)
        if lock.locked() and not wait:
            logger.info(
                "Previous cycle still running for %s — skipping", session.user_email,
            )
            return CycleReport(user_email=session.user_email, outcome="busy")

        async with lock:
            if not session.active:
                return CycleReport(user_email=session.user_email, outcome="stopped")
            try:
                report = await self.check_and_execute_trades(session.user_email)
            except StaleSession as exc:
                logger.warning("%s — stopping auto-trading", exc)
                self._stop_session(session)
                report = CycleReport(
                    user_email=session.user_email, outcome="stale_session",
                )
            except Exception:
                logger.exception("Cycle failed for %s", session.user_email)
                report = CycleReport(user_email=session.user_email, outcome="error")
            session.cycle_count += 1
            session.last_cycle_at = datetime.now(timezone.utc).isoformat()
            return report

    # ── Single cycle ─────────────────────────────────────────────────────

    async def check_and_execute_trades(self, user_email: str) -> CycleReport:
        """Evaluate signals for the user and execute qualifying trades.

        BUY sizes to ``floor(credits * max_position_size / price)`` shares;
        SELL exits the whole held quantity.  A failing signal never stops
        the remaining ones.

        Raises ``StaleSession`` if the user no longer exists.
        """
        report = CycleReport(user_email=user_email)
        logger.info("Checking trades for %s", user_email)

        user = await asyncio.to_thread(self._users.find_by_email, user_email)
        if user is None:
            raise StaleSession(f"User {user_email} not found")

        portfolio = await asyncio.to_thread(self._portfolios.get, user.id)
        if portfolio is None:
            logger.info("No portfolio for %s", user_email)
            report.outcome = "no_portfolio"
            return report

        valid = portfolio.valid_holdings
        if not valid:
            logger.info("No valid holdings for %s", user_email)
            report.outcome = "no_holdings"
            return report

        batch = await self._aggregator.analyze(
            [{"symbol": h.symbol, "quantity": h.quantity} for h in valid]
        )
        report.signals_evaluated = len(batch.signals)
        report.skipped = batch.skipped
        held = {h.symbol: h.quantity for h in valid}

        for signal in batch.signals:
            try:
                if signal.confidence < self.min_confidence:
                    logger.debug(
                        "Confidence too low for %s: %.2f",
                        signal.symbol, signal.confidence,
                    )
                    continue

                if signal.signal is SignalType.BUY:
                    side = TradeSide.BUY
                    quantity = math.floor(
                        user.credits * self.max_position_size / signal.current_price
                    )
                    if quantity <= 0:
                        logger.info("Insufficient funds to buy %s", signal.symbol)
                        continue
                elif signal.signal is SignalType.SELL:
                    side = TradeSide.SELL
                    quantity = held.get(signal.symbol, 0)
                    if quantity <= 0:
                        logger.info("No shares to sell for %s", signal.symbol)
                        continue
                else:
                    continue

                report.trades_attempted += 1
                ok = await self._executor.execute(
                    user_email, signal.symbol, side, quantity, signal.current_price,
                )
                report.trades.append({
                    "symbol": signal.symbol,
                    "side": side.value,
                    "quantity": quantity,
                    "price": signal.current_price,
                    "executed": ok,
                })
                if ok:
                    report.trades_executed += 1
            except Exception:
                logger.exception("Error processing signal for %s", signal.symbol)

        logger.info(
            "Cycle for %s: %d signal(s), %d/%d trade(s) executed",
            user_email, report.signals_evaluated,
            report.trades_executed, report.trades_attempted,
        )
        return report
