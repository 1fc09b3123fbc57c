"""One-shot script to seed the stock catalog and a demo account.

Usage (from the project root):
    python -m scripts.seed_demo --email demo@example.com --credits 10000
"""

import argparse
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from simtrade.config import DEFAULT_WATCHLIST, load_config
from simtrade.errors import DataUnavailable
from simtrade.market.yahoo_client import YahooChartClient
from simtrade.repos.db import init_db
from simtrade.repos.stock_repo import StockRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.repos.watchlist_repo import WatchlistRepo

logger = logging.getLogger("simtrade.seed")

CATALOG: dict[str, str] = {
    "AAPL": "Apple Inc.",
    "GOOGL": "Alphabet Inc.",
    "MSFT": "Microsoft Corporation",
    "AMZN": "Amazon.com, Inc.",
    "META": "Meta Platforms, Inc.",
    "NVDA": "NVIDIA Corporation",
    "TSLA": "Tesla, Inc.",
    "JPM": "JPMorgan Chase & Co.",
    "V": "Visa Inc.",
    "WMT": "Walmart Inc.",
    "ADBE": "Adobe Inc.",
    "NFLX": "Netflix, Inc.",
    "INTC": "Intel Corporation",
    "AMD": "Advanced Micro Devices, Inc.",
    "ORCL": "Oracle Corporation",
}


async def _latest_close(client: YahooChartClient, symbol: str) -> float:
    end = datetime.now(timezone.utc)
    points = await client.fetch_daily_closes(symbol, end - timedelta(days=10), end)
    if not points:
        raise DataUnavailable(symbol, "no recent closes")
    return points[-1].close


async def _main(
    email: str, credits: float, watch: list[str], top_up: bool = False,
) -> None:
    config = load_config()
    init_db(config.db_path)

    client = YahooChartClient(config)
    stocks = StockRepo(config.db_path)
    for symbol, name in CATALOG.items():
        try:
            price = await _latest_close(client, symbol)
        except Exception as exc:
            existing = stocks.get_by_symbol(symbol)
            if existing is None:
                logger.warning("Skipping %s: %s", symbol, exc)
            else:
                logger.warning(
                    "Keeping %s at last known $%.2f: %s", symbol, existing.price, exc,
                )
            continue
        stocks.upsert_stock(symbol, name, price)
        logger.info("Seeded %s at $%.2f", symbol, price)

    users = UserRepo(config.db_path)
    user = users.find_by_email(email)
    if user is None:
        user_id = users.create_user(email, name="Demo", credits=credits)
        logger.info("Created %s with %.2f credits", email, credits)
    else:
        user_id = user.id
        if top_up:
            users.add_credits(user_id, credits)
            logger.info("Topped up %s by %.2f credits", email, credits)
        else:
            logger.info("User %s already exists", email)

    watchlists = WatchlistRepo(config.db_path)
    for symbol in watch:
        watchlists.add_symbol(user_id, symbol)
    logger.info("Watchlist for %s: %s", email, ", ".join(watch))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed SimTrade demo data")
    parser.add_argument("--email", default="demo@example.com")
    parser.add_argument("--credits", type=float, default=10_000.0)
    parser.add_argument(
        "--top-up",
        action="store_true",
        help="Add --credits to the account if it already exists",
    )
    parser.add_argument(
        "--watch",
        default="ADBE,NFLX,AMD",
        help="Comma-separated symbols for the demo user's watchlist",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    watch = [s.strip().upper() for s in args.watch.split(",") if s.strip()]
    asyncio.run(_main(
        args.email, args.credits, watch or list(DEFAULT_WATCHLIST[:3]), args.top_up,
    ))
