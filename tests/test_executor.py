"""Tests for AutoTradeExecutor — validation, atomicity and per-user serialisation."""

import asyncio
from unittest.mock import MagicMock

import pytest

from simtrade.errors import PersistenceFailure
from simtrade.models.portfolio import TradeSide
from simtrade.repos.db import init_db
from simtrade.repos.ledger_repo import LedgerRepo
from simtrade.repos.portfolio_repo import PortfolioRepo
from simtrade.repos.stock_repo import StockRepo
from simtrade.repos.transaction_repo import TransactionRepo
from simtrade.repos.user_repo import UserRepo
from simtrade.trading.executor import AutoTradeExecutor, UserLocks


EMAIL = "a@x.com"


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "exec.db")
    init_db(path)
    return path


def _seed(db_path, credits=1000.0) -> int:
    user_id = UserRepo(db_path).create_user(EMAIL, name="A", credits=credits)
    StockRepo(db_path).upsert_stock("AAPL", "Apple Inc.", 50.0)
    return user_id


def _state(db_path, user_id):
    """(credits, AAPL quantity, transaction count)."""
    credits = UserRepo(db_path).get_by_id(user_id).credits
    portfolio = PortfolioRepo(db_path).get(user_id)
    holding = portfolio.find("AAPL") if portfolio else None
    count = len(TransactionRepo(db_path).list_for_user(EMAIL, limit=1000))
    return credits, (holding.quantity if holding else 0), count


def _make_executor(db_path, locks=None) -> AutoTradeExecutor:
    return AutoTradeExecutor(LedgerRepo(db_path), locks or UserLocks())


class TestExecute:
    @pytest.mark.asyncio
    async def test_buy_succeeds(self, db_path):
        user_id = _seed(db_path, credits=1000.0)
        ok = await _make_executor(db_path).execute(EMAIL, "AAPL", TradeSide.BUY, 4, 50.0)
        assert ok is True
        assert _state(db_path, user_id) == (800.0, 4, 1)
        txn = TransactionRepo(db_path).list_for_user(EMAIL)[0]
        assert txn.automated is True
        assert txn.type is TradeSide.BUY

    @pytest.mark.asyncio
    async def test_buy_insufficient_credits_changes_nothing(self, db_path):
        user_id = _seed(db_path, credits=400.0)
        ok = await _make_executor(db_path).execute(EMAIL, "AAPL", TradeSide.BUY, 10, 50.0)
        assert ok is False
        assert _state(db_path, user_id) == (400.0, 0, 0)

    @pytest.mark.asyncio
    async def test_sell_entire_position_removes_holding(self, db_path):
        user_id = _seed(db_path, credits=1000.0)
        executor = _make_executor(db_path)
        await executor.execute(EMAIL, "AAPL", TradeSide.BUY, 5, 50.0)
        ok = await executor.execute(EMAIL, "AAPL", TradeSide.SELL, 5, 60.0)
        assert ok is True
        assert PortfolioRepo(db_path).get(user_id).find("AAPL") is None
        assert _state(db_path, user_id) == (1000.0 - 250.0 + 300.0, 0, 2)

    @pytest.mark.asyncio
    async def test_sell_not_held_fails(self, db_path):
        user_id = _seed(db_path)
        ok = await _make_executor(db_path).execute(EMAIL, "AAPL", TradeSide.SELL, 1, 50.0)
        assert ok is False
        assert _state(db_path, user_id) == (1000.0, 0, 0)

    @pytest.mark.asyncio
    async def test_accepts_side_as_string(self, db_path):
        _seed(db_path)
        assert await _make_executor(db_path).execute(EMAIL, "AAPL", "BUY", 1, 50.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("side,quantity,price", [
        ("HOLD", 1, 50.0),
        (TradeSide.BUY, 0, 50.0),
        (TradeSide.BUY, -2, 50.0),
        (TradeSide.BUY, 1.5, 50.0),
        (TradeSide.BUY, True, 50.0),
        (TradeSide.BUY, 1, 0.0),
        (TradeSide.BUY, 1, -10.0),
    ])
    async def test_invalid_input_rejected(self, db_path, side, quantity, price):
        user_id = _seed(db_path)
        ok = await _make_executor(db_path).execute(EMAIL, "AAPL", side, quantity, price)
        assert ok is False
        assert _state(db_path, user_id) == (1000.0, 0, 0)

    @pytest.mark.asyncio
    async def test_unknown_user_fails(self, db_path):
        _seed(db_path)
        ok = await _make_executor(db_path).execute("ghost@x.com", "AAPL", TradeSide.BUY, 1, 50.0)
        assert ok is False

    @pytest.mark.asyncio
    async def test_persistence_failure_returns_false(self):
        ledger = MagicMock()
        ledger.apply_trade.side_effect = PersistenceFailure("disk I/O error")
        executor = AutoTradeExecutor(ledger)
        assert await executor.execute(EMAIL, "AAPL", TradeSide.BUY, 1, 50.0) is False


class TestConservation:
    @pytest.mark.asyncio
    async def test_quantity_and_transactions_conserved(self, db_path):
        user_id = _seed(db_path, credits=10_000.0)
        executor = _make_executor(db_path)
        trades = [
            (TradeSide.BUY, 10, 50.0),
            (TradeSide.SELL, 3, 55.0),
            (TradeSide.BUY, 2, 45.0),
            (TradeSide.SELL, 20, 50.0),  # rejected: only 9 held
            (TradeSide.SELL, 9, 60.0),
        ]
        results = [await executor.execute(EMAIL, "AAPL", *t) for t in trades]
        assert results == [True, True, True, False, True]

        bought = sum(q for (s, q, _), ok in zip(trades, results) if ok and s is TradeSide.BUY)
        sold = sum(q for (s, q, _), ok in zip(trades, results) if ok and s is TradeSide.SELL)
        credits, quantity, count = _state(db_path, user_id)
        assert quantity == bought - sold == 0
        assert count == sum(results)
        assert credits == pytest.approx(10_000.0 - 500.0 + 165.0 - 90.0 + 540.0)


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_overspend_exactly_one_succeeds(self, db_path):
        user_id = _seed(db_path, credits=600.0)
        executor = _make_executor(db_path)
        results = await asyncio.gather(
            executor.execute(EMAIL, "AAPL", TradeSide.BUY, 10, 50.0),
            executor.execute(EMAIL, "AAPL", TradeSide.BUY, 10, 50.0),
        )
        assert sorted(results) == [False, True]
        assert _state(db_path, user_id) == (100.0, 10, 1)

    @pytest.mark.asyncio
    async def test_overspend_guarded_without_shared_lock(self, db_path):
        """Separate lock registries still cannot overdraw the account."""
        user_id = _seed(db_path, credits=600.0)
        a = _make_executor(db_path, UserLocks())
        b = _make_executor(db_path, UserLocks())
        results = await asyncio.gather(
            a.execute(EMAIL, "AAPL", TradeSide.BUY, 10, 50.0),
            b.execute(EMAIL, "AAPL", TradeSide.BUY, 10, 50.0),
        )
        assert sorted(results) == [False, True]
        assert _state(db_path, user_id) == (100.0, 10, 1)

    @pytest.mark.asyncio
    async def test_manual_sell_racing_automated_buy(self, db_path):
        user_id = _seed(db_path, credits=1000.0)
        locks = UserLocks()
        automated = _make_executor(db_path, locks)
        manual = _make_executor(db_path, locks)
        await automated.execute(EMAIL, "AAPL", TradeSide.BUY, 5, 50.0)

        results = await asyncio.gather(
            automated.execute(EMAIL, "AAPL", TradeSide.BUY, 4, 50.0),
            manual.execute(EMAIL, "AAPL", TradeSide.SELL, 5, 50.0, automated=False),
        )
        assert results == [True, True]
        credits, quantity, count = _state(db_path, user_id)
        assert quantity == 5 + 4 - 5
        assert credits == 1000.0 - 250.0 - 200.0 + 250.0
        assert count == 3
        flags = sorted(t.automated for t in TransactionRepo(db_path).list_for_user(EMAIL))
        assert flags == [False, True, True]
