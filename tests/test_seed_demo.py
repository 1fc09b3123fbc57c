"""Tests for scripts.seed_demo — catalog pricing and demo account setup."""

import pytest

from scripts import seed_demo
from simtrade.config import Config
from simtrade.errors import DataUnavailable
from simtrade.repos.stock_repo import StockRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.repos.watchlist_repo import WatchlistRepo


EMAIL = "demo@x.com"


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = str(tmp_path / "seed.db")
    monkeypatch.setattr(seed_demo, "load_config", lambda: Config(db_path=path))
    return path


def _quotes(monkeypatch, prices: dict):
    """Serve *prices* as latest closes; other symbols are unavailable."""

    async def latest_close(client, symbol):
        if symbol not in prices:
            raise DataUnavailable(symbol, "no recent closes")
        return prices[symbol]

    monkeypatch.setattr(seed_demo, "_latest_close", latest_close)


class TestCatalog:
    @pytest.mark.asyncio
    async def test_seeds_priced_symbols_only(self, db_path, monkeypatch):
        _quotes(monkeypatch, {"AAPL": 150.0, "MSFT": 300.0})
        await seed_demo._main(EMAIL, 1000.0, ["ADBE"])
        stocks = StockRepo(db_path)
        assert stocks.get_by_symbol("AAPL").price == 150.0
        assert stocks.get_by_symbol("AAPL").name == "Apple Inc."
        assert stocks.get_by_symbol("ORCL") is None

    @pytest.mark.asyncio
    async def test_failed_quote_keeps_last_known_price(self, db_path, monkeypatch):
        _quotes(monkeypatch, {"AAPL": 150.0})
        await seed_demo._main(EMAIL, 1000.0, [])
        _quotes(monkeypatch, {})
        await seed_demo._main(EMAIL, 1000.0, [])
        assert StockRepo(db_path).get_by_symbol("AAPL").price == 150.0


class TestDemoAccount:
    @pytest.mark.asyncio
    async def test_creates_user_and_watchlist(self, db_path, monkeypatch):
        _quotes(monkeypatch, {})
        await seed_demo._main(EMAIL, 1000.0, ["ADBE", "NFLX"])
        user = UserRepo(db_path).find_by_email(EMAIL)
        assert user.credits == 1000.0
        assert WatchlistRepo(db_path).get_symbols(user.id) == ["ADBE", "NFLX"]

    @pytest.mark.asyncio
    async def test_rerun_leaves_credits_alone(self, db_path, monkeypatch):
        _quotes(monkeypatch, {})
        await seed_demo._main(EMAIL, 1000.0, [])
        await seed_demo._main(EMAIL, 500.0, [])
        assert UserRepo(db_path).find_by_email(EMAIL).credits == 1000.0

    @pytest.mark.asyncio
    async def test_top_up_adds_credits(self, db_path, monkeypatch):
        _quotes(monkeypatch, {})
        await seed_demo._main(EMAIL, 1000.0, [])
        await seed_demo._main(EMAIL, 500.0, [], top_up=True)
        assert UserRepo(db_path).find_by_email(EMAIL).credits == 1500.0
