"""Portfolio, ledger and account models.

Holdings are read straight from storage and may be structurally invalid
(unresolved stock reference, empty symbol, non-positive quantity) or carry
legacy gaps (missing purchase price or date).  ``PortfolioSanitizer`` is the
only component that repairs them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class TradeSide(str, Enum):
    """Side of an executed trade."""

    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class User:
    """A simulated-trading account."""

    id: int
    email: str
    name: str
    credits: float


@dataclass(frozen=True)
class Stock:
    """An entry in the symbol catalog."""

    id: int
    symbol: str
    name: str
    price: float  # last known quote


@dataclass(frozen=True)
class Holding:
    """One position in a portfolio, keyed by ``stock_id``.

    ``symbol`` is ``None`` when the stock reference no longer resolves.
    ``stock_price`` is the catalog's last known price for the symbol.
    """

    stock_id: int
    symbol: Optional[str]
    quantity: int
    purchase_price: Optional[float]
    purchase_date: Optional[str]
    stock_price: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        """Resolved, non-empty symbol and a positive quantity."""
        return bool(self.symbol) and self.quantity > 0

    @property
    def needs_repair(self) -> bool:
        """Legacy record missing its purchase price or date."""
        return (
            self.purchase_price is None
            or self.purchase_price <= 0
            or not self.purchase_date
        )


@dataclass(frozen=True)
class Portfolio:
    """All holdings owned by one user."""

    id: int
    user_id: int
    holdings: tuple[Holding, ...] = field(default_factory=tuple)

    def find(self, symbol: str) -> Optional[Holding]:
        """Return the holding for *symbol*, or ``None``."""
        for h in self.holdings:
            if h.symbol == symbol:
                return h
        return None

    @property
    def valid_holdings(self) -> list[Holding]:
        return [h for h in self.holdings if h.is_valid]


@dataclass(frozen=True)
class Transaction:
    """An append-only ledger entry for one executed trade."""

    user_email: str
    symbol: str
    name: str
    price: float
    quantity: int
    type: TradeSide
    automated: bool
    timestamp: str
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_email": self.user_email,
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "quantity": self.quantity,
            "type": self.type.value,
            "automated": self.automated,
            "timestamp": self.timestamp,
        }
