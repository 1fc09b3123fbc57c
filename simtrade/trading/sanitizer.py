"""PortfolioSanitizer — idempotent repair pass over stored holdings.

Discard policy: holdings whose stock reference does not resolve, whose symbol
is empty, or whose quantity is not positive are removed.

Repair policy: holdings missing a purchase price or date are kept and
back-filled from the catalog's last known price (or a fallback constant) and
the current time.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from simtrade.errors import PersistenceFailure, UserNotFound
from simtrade.models.portfolio import Holding, Portfolio
from simtrade.repos.portfolio_repo import PortfolioRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.trading.executor import UserLocks

logger = logging.getLogger("simtrade.sanitizer")


@dataclass
class SanitizeReport:
    """What a sanitize pass changed."""

    removed: list[int] = field(default_factory=list)  # stock ids
    repaired: list[str] = field(default_factory=list)  # symbols
    failed: list[int] = field(default_factory=list)  # stock ids not persisted
    saved: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.repaired)


def clean_holdings(
    holdings: tuple[Holding, ...],
    fallback_price: float,
    now: datetime,
) -> tuple[list[Holding], list[Holding], list[Holding]]:
    """Split *holdings* into (kept, removed, repaired).  Pure function.

    ``kept`` includes the repaired holdings in their original order.
    """
    kept: list[Holding] = []
    removed: list[Holding] = []
    repaired: list[Holding] = []

    for h in holdings:
        if not h.is_valid:
            removed.append(h)
            continue
        if h.needs_repair:
            price = h.purchase_price
            if price is None or price <= 0:
                price = h.stock_price if h.stock_price and h.stock_price > 0 else fallback_price
            h = replace(
                h,
                purchase_price=price,
                purchase_date=h.purchase_date or now.isoformat(),
            )
            repaired.append(h)
        kept.append(h)
    return kept, removed, repaired


class PortfolioSanitizer:
    """Removes or repairs structurally invalid holdings.

    Args:
        portfolios: ``PortfolioRepo``.
        users: ``UserRepo`` used to resolve the user's lock key.
        locks: Per-user lock registry shared with the executor.
        fallback_price: Purchase price used when no catalog price is known.
    """

    def __init__(
        self,
        portfolios: PortfolioRepo,
        users: UserRepo,
        locks: UserLocks,
        fallback_price: float = 100.0,
    ) -> None:
        self._portfolios = portfolios
        self._users = users
        self._locks = locks
        self._fallback_price = fallback_price

    async def sanitize(
        self, user_id: int, now: Optional[datetime] = None,
    ) -> SanitizeReport:
        """Clean the user's portfolio; safe to call repeatedly.

        Raises ``UserNotFound`` if *user_id* does not exist.
        """
        user = await asyncio.to_thread(self._users.get_by_id, user_id)
        if user is None:
            raise UserNotFound(f"No user with id {user_id}")

        async with self._locks.for_user(user.email):
            return await asyncio.to_thread(self._sanitize_locked, user_id, now)

    def _sanitize_locked(
        self, user_id: int, now: Optional[datetime],
    ) -> SanitizeReport:
        if now is None:
            now = datetime.now(timezone.utc)
        report = SanitizeReport()

        portfolio = self._portfolios.get(user_id)
        if portfolio is None:
            logger.info("No portfolio found for user %s", user_id)
            return report

        kept, removed, repaired = clean_holdings(
            portfolio.holdings, self._fallback_price, now,
        )
        report.removed = [h.stock_id for h in removed]
        report.repaired = [h.symbol for h in repaired]

        if not report.changed:
            logger.debug("No invalid holdings for user %s", user_id)
            return report

        logger.info(
            "Cleaning portfolio for user %s: %d removed, %d repaired, %d kept",
            user_id, len(removed), len(repaired), len(kept),
        )
        try:
            self._portfolios.replace_holdings(portfolio.id, kept)
            report.saved = True
        except PersistenceFailure as exc:
            logger.error("Bulk save failed (%s); retrying per holding", exc)
            report.failed = self._save_one_by_one(portfolio, removed, repaired)
            report.saved = not report.failed
        return report

    def _save_one_by_one(
        self,
        portfolio: Portfolio,
        removed: list[Holding],
        repaired: list[Holding],
    ) -> list[int]:
        """Apply each change individually; return stock ids that failed."""
        failed: list[int] = []
        for h in removed:
            try:
                self._portfolios.delete_holding(portfolio.id, h.stock_id)
            except PersistenceFailure as exc:
                logger.error("Could not remove holding %s: %s", h.stock_id, exc)
                failed.append(h.stock_id)
        for h in repaired:
            try:
                self._portfolios.save_holding(portfolio.id, h)
            except PersistenceFailure as exc:
                logger.error("Could not repair holding %s: %s", h.symbol, exc)
                failed.append(h.stock_id)
        return failed
