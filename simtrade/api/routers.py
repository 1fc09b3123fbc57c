"""Internal API routers — /auto-trading start, stop, status, signals, cleanup.

No business logic, no DB access. Delegates to the ``AutoTradingService``.
"""

import logging

from fastapi import APIRouter, HTTPException, Query

from simtrade.errors import UserNotFound

logger = logging.getLogger("simtrade")
router = APIRouter(prefix="/auto-trading", tags=["auto-trading"])

# ── Shared state (set during app startup) ────────────────────────────────

_service = None  # Set via configure_routers()


def configure_routers(service) -> None:
    """Inject dependencies from the application startup.

    Args:
        service: An ``AutoTradingService`` instance (or duck-type for tests).
    """
    global _service  # noqa: PLW0603
    _service = service


def _require_service():
    if _service is None:
        raise HTTPException(status_code=503, detail="Service not configured")
    return _service


# ── Lifecycle ────────────────────────────────────────────────────────────


@router.post("/start/{email}")
async def start_auto_trading(email: str):
    """Start automated trading for a user."""
    service = _require_service()
    try:
        started = await service.start_auto_trading(email)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    if not started:
        raise HTTPException(
            status_code=400, detail="Automated trading is already active",
        )
    logger.info("Auto-trading started via API for %s", email)
    return {"message": "Automated trading started successfully"}


@router.post("/stop/{email}")
async def stop_auto_trading(email: str):
    """Stop automated trading for a user."""
    service = _require_service()
    if not service.stop_auto_trading(email):
        raise HTTPException(status_code=400, detail="Automated trading is not active")
    logger.info("Auto-trading stopped via API for %s", email)
    return {"message": "Automated trading stopped successfully"}


@router.get("/status/{email}")
async def get_status(email: str):
    """Return whether automated trading is active, with session details."""
    service = _require_service()
    is_active = service.is_auto_trading_active(email)
    return {
        "is_active": is_active,
        "message": (
            "Automated trading is active" if is_active
            else "Automated trading is not active"
        ),
        "session": service.auto_trading_status(email),
    }


# ── Signals ──────────────────────────────────────────────────────────────


@router.get("/signals/{email}")
async def get_signals(email: str):
    """Return ranked mean-reversion signals for a user's portfolio."""
    service = _require_service()
    try:
        batch = await service.get_signals(email)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "signals": [s.to_dict() for s in batch.signals],
        "skipped": [{"symbol": s.symbol, "reason": s.reason} for s in batch.skipped],
    }


@router.get("/test/{symbol}")
async def test_signal(symbol: str):
    """Compute the signal for one symbol, with its parameters."""
    service = _require_service()
    signal = await service.test_signal(symbol.upper())
    if signal is None:
        raise HTTPException(
            status_code=404, detail="Could not calculate signal for this stock",
        )
    return {"message": "Signal calculated successfully", "signal": signal}


# ── Portfolio & ledger ───────────────────────────────────────────────────


@router.post("/cleanup/{user_id}")
async def cleanup_portfolio(user_id: int):
    """Remove or repair invalid holdings in a user's portfolio."""
    service = _require_service()
    try:
        report = await service.cleanup_portfolio(user_id)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")
    return {
        "removed": report.removed,
        "repaired": report.repaired,
        "failed": report.failed,
        "saved": report.saved,
    }


@router.get("/transactions/{email}")
async def get_transactions(
    email: str,
    limit: int = Query(default=50, ge=1, le=500),
):
    """Return recent transactions and realised spend/earn totals."""
    service = _require_service()
    try:
        return await service.get_transactions(email, limit=limit)
    except UserNotFound:
        raise HTTPException(status_code=404, detail="User not found")


def current_service():
    """Return the injected service, or ``None`` before startup."""
    return _service
