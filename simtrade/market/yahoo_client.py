"""Yahoo Finance chart API async client.

Implements the price-history provider contract: a time-ordered window of
daily closes for one symbol.  Gaps (``null`` closes on holidays or halted
sessions) are dropped; an empty list means no usable data.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from simtrade.config import Config
from simtrade.market.models import PricePoint

logger = logging.getLogger("simtrade.market")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}


class YahooChartClient:
    """Async client wrapping the Yahoo Finance v8 chart endpoint."""

    def __init__(self, config: Config) -> None:
        self._base_url = config.yahoo_base_url.rstrip("/")
        self._timeout = config.provider_timeout_seconds
        self._headers = {
            "User-Agent": "Mozilla/5.0 (compatible; simtrade/0.1)",
            "Accept": "application/json",
        }

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(self, url: str, **kwargs) -> httpx.Response:
        """GET *url* with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504) and rate-limits
        (429).  Non-retryable errors are raised immediately.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(
                        url,
                        headers=self._headers,
                        timeout=self._timeout,
                        **kwargs,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = _RETRY_BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        "Yahoo GET %s returned %d — retry %d/%d in %.1fs",
                        url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = _RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    "Yahoo GET %s transport error (%s) — retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        raise last_exc  # type: ignore[misc]

    # ── Price history ────────────────────────────────────────────────────

    async def fetch_daily_closes(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
    ) -> list[PricePoint]:
        """Fetch daily closes between *start* and *end*.

        Args:
            symbol: Ticker, e.g. ``"AAPL"``.
            start: Window start (inclusive).
            end: Window end (inclusive).

        Returns:
            List of ``PricePoint`` ordered oldest-first.  Empty when Yahoo
            reports no data for the range.
        """
        url = f"{self._base_url}/v8/finance/chart/{symbol}"
        params = {
            "period1": int(start.timestamp()),
            "period2": int(end.timestamp()),
            "interval": "1d",
        }

        resp = await self._request_with_retry(url, params=params)
        return parse_chart(resp.json())


def parse_chart(payload: dict) -> list[PricePoint]:
    """Extract ``PricePoint`` objects from a chart API response body."""
    chart = payload.get("chart") or {}
    results = chart.get("result") or []
    if not results:
        return []

    result = results[0]
    timestamps = result.get("timestamp") or []
    quotes = (result.get("indicators") or {}).get("quote") or []
    if not quotes:
        return []
    closes = quotes[0].get("close") or []

    points: list[PricePoint] = []
    for ts, close in zip(timestamps, closes):
        if close is None:
            continue
        day = datetime.fromtimestamp(int(ts), tz=timezone.utc).date().isoformat()
        points.append(PricePoint(date=day, close=float(close)))
    return points
