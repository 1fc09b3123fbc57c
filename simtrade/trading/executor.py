"""AutoTradeExecutor — validates and applies one simulated trade.

Trades for the same user are serialised by a per-user ``asyncio.Lock``
(shared with the manual trade path) and applied in a single database
transaction by ``LedgerRepo``.  ``execute`` never raises: validation and
persistence failures are logged and reported as ``False``.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Optional

from simtrade.errors import PersistenceFailure, ValidationFailure
from simtrade.models.portfolio import TradeSide
from simtrade.repos.ledger_repo import LedgerRepo

logger = logging.getLogger("simtrade.executor")


class UserLocks:
    """Registry of per-user locks.  Create one per event loop."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def for_user(self, user_email: str) -> asyncio.Lock:
        return self._locks[user_email]


class AutoTradeExecutor:
    """Applies BUY/SELL orders against a user's credits and portfolio.

    Args:
        ledger: ``LedgerRepo`` performing the atomic write.
        locks: Per-user lock registry; pass the same instance to every
               component that mutates a user's portfolio.
    """

    def __init__(self, ledger: LedgerRepo, locks: Optional[UserLocks] = None) -> None:
        self._ledger = ledger
        self._locks = locks or UserLocks()

    async def execute(
        self,
        user_email: str,
        symbol: str,
        side: TradeSide,
        quantity: int,
        price: float,
        automated: bool = True,
    ) -> bool:
        """Execute a trade.  Returns ``True`` only if it was committed."""
        try:
            side = TradeSide(side)
        except ValueError:
            logger.warning("Rejected trade for %s: unknown side %r", user_email, side)
            return False
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            logger.warning(
                "Rejected %s %s for %s: quantity must be a positive integer, got %r",
                side.value, symbol, user_email, quantity,
            )
            return False
        if not price or price <= 0:
            logger.warning(
                "Rejected %s %s for %s: price must be positive, got %r",
                side.value, symbol, user_email, price,
            )
            return False

        logger.info(
            "Executing %s for %s: %d x %s at $%.2f",
            side.value, user_email, quantity, symbol, price,
        )
        async with self._locks.for_user(user_email):
            try:
                txn = await asyncio.to_thread(
                    self._ledger.apply_trade,
                    user_email, symbol, side, quantity, price, automated,
                )
            except ValidationFailure as exc:
                logger.info("Trade rejected for %s: %s", user_email, exc)
                return False
            except PersistenceFailure as exc:
                logger.error("Trade not persisted for %s: %s", user_email, exc)
                return False

        logger.info(
            "Executed %s for %s: %d x %s (txn %s)",
            side.value, user_email, quantity, symbol, txn.id,
        )
        return True
