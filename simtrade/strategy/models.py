"""Strategy data models — typed representations for signal outputs."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SignalType(str, Enum):
    """Direction suggested by the mean-reversion model."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class Signal:
    """A scored mean-reversion reading for one symbol.

    ``z_score`` is ``None`` when the window has zero variance.
    """

    symbol: str
    signal: SignalType
    confidence: float
    current_price: float
    mean: float
    std_dev: float
    z_score: Optional[float]

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "signal": self.signal.value,
            "confidence": self.confidence,
            "current_price": self.current_price,
            "mean": self.mean,
            "std_dev": self.std_dev,
            "z_score": self.z_score,
        }


@dataclass(frozen=True)
class SkippedSymbol:
    """A symbol that produced no signal, with the reason."""

    symbol: str
    reason: str


@dataclass
class SignalBatch:
    """Outcome of a best-effort analysis over many symbols."""

    signals: list[Signal] = field(default_factory=list)
    skipped: list[SkippedSymbol] = field(default_factory=list)

    def merge(self, other: "SignalBatch") -> "SignalBatch":
        """Return a new batch with both sets of results, ranked by confidence."""
        return SignalBatch(
            signals=rank_signals(self.signals + other.signals),
            skipped=self.skipped + other.skipped,
        )


def rank_signals(signals: list[Signal]) -> list[Signal]:
    """Sort by confidence, highest first.

    ``sorted`` is stable, so equal-confidence signals keep their input order.
    """
    return sorted(signals, key=lambda s: s.confidence, reverse=True)
