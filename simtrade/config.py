"""SimTrade — application configuration.

Loads .env variables into a typed config object.
Validates numeric ranges on startup.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


DEFAULT_WATCHLIST: tuple[str, ...] = (
    "AAPL", "GOOGL", "MSFT", "AMZN", "META",
    "NVDA", "TSLA", "JPM", "V", "WMT",
)


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    db_path: str = "data/simtrade.db"
    log_level: str = "INFO"
    api_port: int = 8080
    yahoo_base_url: str = "https://query1.finance.yahoo.com"

    # Signal generation
    lookback_days: int = 20
    std_dev_threshold: float = 1.0
    display_min_confidence: float = 0.2
    provider_timeout_seconds: float = 10.0
    watchlist: tuple[str, ...] = field(default=DEFAULT_WATCHLIST)

    # Automated execution
    auto_min_confidence: float = 0.7
    max_position_size: float = 0.1
    check_interval_seconds: int = 300

    # Portfolio repair
    fallback_purchase_price: float = 100.0


def _parse_watchlist(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_WATCHLIST
    return tuple(s.strip().upper() for s in raw.split(",") if s.strip())


def _validate(config: Config) -> None:
    """Raise ``ValueError`` naming the variable when a value is out of range."""
    errors: list[str] = []
    if config.lookback_days < 2:
        errors.append("LOOKBACK_DAYS must be at least 2")
    if config.std_dev_threshold <= 0:
        errors.append("STD_DEV_THRESHOLD must be positive")
    if not 0.0 <= config.display_min_confidence <= 1.0:
        errors.append("DISPLAY_MIN_CONFIDENCE must be within 0–1")
    if not 0.0 <= config.auto_min_confidence <= 1.0:
        errors.append("AUTO_MIN_CONFIDENCE must be within 0–1")
    if not 0.0 < config.max_position_size <= 1.0:
        errors.append("MAX_POSITION_SIZE must be within (0, 1]")
    if config.check_interval_seconds <= 0:
        errors.append("CHECK_INTERVAL_SECONDS must be positive")
    if config.provider_timeout_seconds <= 0:
        errors.append("PROVIDER_TIMEOUT_SECONDS must be positive")
    if config.fallback_purchase_price <= 0:
        errors.append("FALLBACK_PURCHASE_PRICE must be positive")
    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable is optional.  Raises ``ValueError`` with a message naming
    the offending variable when a value is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    config = Config(
        db_path=os.environ.get("DB_PATH", "data/simtrade.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_env_int("API_PORT", "8080"),
        yahoo_base_url=os.environ.get(
            "YAHOO_BASE_URL", "https://query1.finance.yahoo.com",
        ),
        lookback_days=_env_int("LOOKBACK_DAYS", "20"),
        std_dev_threshold=_env_float("STD_DEV_THRESHOLD", "1.0"),
        display_min_confidence=_env_float("DISPLAY_MIN_CONFIDENCE", "0.2"),
        provider_timeout_seconds=_env_float("PROVIDER_TIMEOUT_SECONDS", "10"),
        watchlist=_parse_watchlist(os.environ.get("WATCHLIST")),
        auto_min_confidence=_env_float("AUTO_MIN_CONFIDENCE", "0.7"),
        max_position_size=_env_float("MAX_POSITION_SIZE", "0.1"),
        check_interval_seconds=_env_int("CHECK_INTERVAL_SECONDS", "300"),
        fallback_purchase_price=_env_float("FALLBACK_PURCHASE_PRICE", "100"),
    )

    _validate(config)
    return config
