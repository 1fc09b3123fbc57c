"""Tests for PortfolioSanitizer — discard/repair policy, idempotence, fallback save."""

from datetime import datetime, timezone

import pytest

from simtrade.errors import PersistenceFailure, UserNotFound
from simtrade.models.portfolio import Holding
from simtrade.repos.db import init_db
from simtrade.repos.portfolio_repo import PortfolioRepo
from simtrade.repos.stock_repo import StockRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.trading.executor import UserLocks
from simtrade.trading.sanitizer import PortfolioSanitizer, clean_holdings


NOW = datetime(2025, 3, 14, 15, 0, tzinfo=timezone.utc)
EARLIER = "2025-01-02T15:00:00+00:00"


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "sanitize.db")
    init_db(path)
    return path


def _make_sanitizer(db_path, portfolios=None) -> PortfolioSanitizer:
    return PortfolioSanitizer(
        portfolios or PortfolioRepo(db_path),
        UserRepo(db_path),
        UserLocks(),
        fallback_price=100.0,
    )


def _seed_messy(db_path):
    """A portfolio with one good, two repairable and three invalid holdings."""
    user_id = UserRepo(db_path).create_user("a@x.com", credits=500.0)
    stocks = StockRepo(db_path)
    aapl = stocks.upsert_stock("AAPL", "Apple Inc.", 50.0)
    msft = stocks.upsert_stock("MSFT", "Microsoft Corporation", 400.0)
    nvda = stocks.upsert_stock("NVDA", "NVIDIA Corporation", 0.0)
    tsla = stocks.upsert_stock("TSLA", "Tesla, Inc.", 250.0)
    jpm = stocks.upsert_stock("JPM", "JPMorgan Chase & Co.", 200.0)

    repo = PortfolioRepo(db_path)
    pid = repo.get_or_create(user_id)
    repo.insert_holding(pid, aapl, 3, 48.0, EARLIER)     # good
    repo.insert_holding(pid, msft, 2, None, EARLIER)     # repair price from catalog
    repo.insert_holding(pid, nvda, 1, 0.0, None)         # repair with fallback price
    repo.insert_holding(pid, 9999, 4, 10.0, EARLIER)     # unresolved stock
    repo.insert_holding(pid, tsla, 0, 250.0, EARLIER)    # zero quantity
    repo.insert_holding(pid, jpm, -1, 200.0, EARLIER)    # negative quantity
    return user_id, pid


class TestCleanHoldings:
    def test_pure_split(self):
        holdings = (
            Holding(1, "AAPL", 3, 48.0, EARLIER),
            Holding(2, "", 1, 10.0, EARLIER),
            Holding(3, "MSFT", 2, None, None, stock_price=400.0),
        )
        kept, removed, repaired = clean_holdings(holdings, 100.0, NOW)
        assert [h.symbol for h in kept] == ["AAPL", "MSFT"]
        assert [h.stock_id for h in removed] == [2]
        assert repaired[0].purchase_price == 400.0
        assert repaired[0].purchase_date == NOW.isoformat()

    def test_existing_values_kept(self):
        h = Holding(1, "AAPL", 3, None, EARLIER, stock_price=50.0)
        kept, _, repaired = clean_holdings((h,), 100.0, NOW)
        assert kept[0].purchase_date == EARLIER
        assert kept[0].purchase_price == 50.0


class TestSanitize:
    @pytest.mark.asyncio
    async def test_removes_and_repairs(self, db_path):
        user_id, _ = _seed_messy(db_path)
        report = await _make_sanitizer(db_path).sanitize(user_id, now=NOW)

        assert report.saved is True
        assert sorted(report.repaired) == ["MSFT", "NVDA"]
        assert len(report.removed) == 3

        holdings = {h.symbol: h for h in PortfolioRepo(db_path).get(user_id).holdings}
        assert set(holdings) == {"AAPL", "MSFT", "NVDA"}
        assert holdings["AAPL"].purchase_price == 48.0
        assert holdings["MSFT"].purchase_price == 400.0
        assert holdings["MSFT"].purchase_date == EARLIER
        assert holdings["NVDA"].purchase_price == 100.0
        assert holdings["NVDA"].purchase_date == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_idempotent(self, db_path):
        user_id, _ = _seed_messy(db_path)
        sanitizer = _make_sanitizer(db_path)
        await sanitizer.sanitize(user_id, now=NOW)
        after_first = PortfolioRepo(db_path).get(user_id)

        report = await sanitizer.sanitize(user_id, now=NOW)
        assert report.changed is False
        assert report.saved is False
        assert PortfolioRepo(db_path).get(user_id) == after_first

    @pytest.mark.asyncio
    async def test_no_portfolio_is_noop(self, db_path):
        user_id = UserRepo(db_path).create_user("b@x.com")
        report = await _make_sanitizer(db_path).sanitize(user_id)
        assert report.changed is False
        assert PortfolioRepo(db_path).get(user_id) is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_path):
        with pytest.raises(UserNotFound):
            await _make_sanitizer(db_path).sanitize(12345)

    @pytest.mark.asyncio
    async def test_bulk_failure_falls_back_per_holding(self, db_path):
        user_id, _ = _seed_messy(db_path)
        real = PortfolioRepo(db_path)

        class FlakyRepo:
            """Bulk save fails; MSFT repair fails; everything else works."""

            def get(self, uid):
                return real.get(uid)

            def replace_holdings(self, portfolio_id, holdings):
                raise PersistenceFailure("database is locked")

            def delete_holding(self, portfolio_id, stock_id):
                real.delete_holding(portfolio_id, stock_id)

            def save_holding(self, portfolio_id, holding):
                if holding.symbol == "MSFT":
                    raise PersistenceFailure("constraint failed")
                real.save_holding(portfolio_id, holding)

        report = await _make_sanitizer(db_path, portfolios=FlakyRepo()).sanitize(
            user_id, now=NOW,
        )
        assert report.saved is False
        assert len(report.failed) == 1

        holdings = {h.symbol: h for h in real.get(user_id).holdings}
        assert set(holdings) == {"AAPL", "MSFT", "NVDA"}
        assert holdings["NVDA"].purchase_price == 100.0
        assert holdings["MSFT"].purchase_price is None
