"""SimTrade — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
serving the API and one-shot signal checks.
"""

import logging

from fastapi import FastAPI

from simtrade.api.routers import current_service, router

logger = logging.getLogger("simtrade")

app = FastAPI(title="SimTrade Internal API", version="0.1.0")
app.include_router(router)


@app.on_event("shutdown")
async def shutdown_event():
    service = current_service()
    if service is not None:
        logger.info("Shutdown — stopping auto-trading sessions.")
        await service.shutdown()


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio

    from simtrade.config import load_config
    from simtrade.repos.db import init_db
    from simtrade.trading.service import build_service

    parser = argparse.ArgumentParser(description="SimTrade automated trader")
    parser.add_argument(
        "--mode",
        choices=["serve", "signal"],
        default="serve",
        help="serve: run the API server; signal: score one symbol and exit",
    )
    parser.add_argument("--symbol", help="Ticker for --mode signal, e.g. AAPL")
    parser.add_argument("--port", type=int, help="API port (default: API_PORT)")
    args = parser.parse_args()

    config = load_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)
    service = build_service(config)

    if args.mode == "signal":
        if not args.symbol:
            parser.error("--symbol is required with --mode signal")
        asyncio.run(_run_signal(service, args.symbol.upper()))
        return

    from simtrade.api.routers import configure_routers

    configure_routers(service=service)
    asyncio.run(_run_server(args.port or config.api_port))


async def _run_server(port: int) -> None:
    """Serve the API until interrupted."""
    import uvicorn

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)
    logger.info("SimTrade API available at http://localhost:%d", port)
    await server.serve()
    logger.info("SimTrade stopped.")


async def _run_signal(service, symbol: str) -> None:
    """Print the current signal for *symbol*."""
    result = await service.test_signal(symbol)
    if result is None:
        logger.error("Could not calculate a signal for %s", symbol)
        raise SystemExit(1)
    logger.info(
        "%s: %s (confidence %.2f, z=%s) — %s",
        symbol,
        result["signal"],
        result["confidence"],
        "n/a" if result["z_score"] is None else f"{result['z_score']:.2f}",
        result["interpretation"],
    )


if __name__ == "__main__":
    _run_cli()
