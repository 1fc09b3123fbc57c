"""Exception taxonomy for the trading core.

``DataUnavailable`` and ``ValidationFailure`` are recovered locally by the
component that raises them; they never abort a batch or a scheduler cycle.
"""


class SimTradeError(Exception):
    """Base class for all SimTrade errors."""


class DataUnavailable(SimTradeError):
    """The price provider returned nothing usable for a symbol."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class ValidationFailure(SimTradeError):
    """A trade was rejected: insufficient funds/shares, unknown user or symbol."""


class PersistenceFailure(SimTradeError):
    """A store read or write failed."""


class StaleSession(SimTradeError):
    """A scheduled user no longer resolves to an account."""


class UserNotFound(SimTradeError):
    """No account exists for the given e-mail or id."""
