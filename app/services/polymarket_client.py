"""
app/services/polymarket_client.py
Async wrapper around Polymarket's public Gamma (market data) and CLOB
(order book) APIs. Read-only; no auth.

Every call raises on failure (httpx.HTTPStatusError on non-2xx,
httpx.HTTPError on transport problems, MarketDataError on payloads that
cannot be used). Callers decide whether a failure is fatal.
"""

import json
import logging
from typing import Any

import httpx

from core.config import Settings, get_settings
from core.constants import CLOB_URL, GAMMA_URL

logger = logging.getLogger(__name__)


class MarketDataError(Exception):
    """An upstream payload was missing or could not be parsed."""


# ------------------------------------------------------------------
# Payload helpers
# ------------------------------------------------------------------

def parse_json_list(raw: Any, field: str) -> list:
    """
    Gamma encodes list fields (outcomePrices, clobTokenIds) as JSON strings.
    Accept either the encoded string or an already-decoded list.
    """
    if isinstance(raw, list):
        return raw
    if not isinstance(raw, str) or not raw:
        raise MarketDataError(f"{field} missing")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MarketDataError(f"{field} is not valid JSON: {raw!r}") from exc
    if not isinstance(value, list):
        raise MarketDataError(f"{field} is not a list: {raw!r}")
    return value


def parse_outcome_prices(market: dict) -> list[str]:
    """Return the two-element outcome price pair as strings, YES first."""
    prices = parse_json_list(market.get("outcomePrices"), "outcomePrices")
    if len(prices) != 2:
        raise MarketDataError(f"expected 2 outcome prices, got {len(prices)}")
    return [str(p) for p in prices]


def parse_book_levels(book: dict, side: str) -> list[tuple[float, float]]:
    """Return (price, size) pairs for one side of an order book ("bids" or "asks")."""
    levels = book.get(side) or []
    parsed: list[tuple[float, float]] = []
    try:
        for level in levels:
            parsed.append((float(level["price"]), float(level["size"])))
    except (KeyError, TypeError, ValueError) as exc:
        raise MarketDataError(f"malformed {side} level in order book: {exc}") from exc
    return parsed


class PolymarketClient:
    """Async client for the public Polymarket APIs."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)

    # ------------------------------------------------------------------
    # Gamma API (market data)
    # ------------------------------------------------------------------

    async def get_market_by_id(self, market_id: str) -> dict:
        """Get a single market by its Gamma id (closed flag, outcomePrices, ...)."""
        resp = await self._client.get(f"{GAMMA_URL}/markets", params={"id": market_id})
        resp.raise_for_status()
        return self._first_market(resp.json(), f"id={market_id}")

    async def get_market_by_slug(self, slug: str) -> dict:
        """Get a single market by slug."""
        resp = await self._client.get(f"{GAMMA_URL}/markets", params={"slug": slug})
        resp.raise_for_status()
        return self._first_market(resp.json(), f"slug={slug}")

    async def get_events(self, limit: int = 100, offset: int = 0) -> list[dict]:
        """Fetch one page of open events, newest first."""
        params: dict[str, Any] = {
            "order": "id",
            "ascending": "false",
            "closed": "false",
            "limit": limit,
            "offset": offset,
        }
        resp = await self._client.get(f"{GAMMA_URL}/events", params=params)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise MarketDataError("events response is not a list")
        return data

    @staticmethod
    def _first_market(data: Any, query: str) -> dict:
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise MarketDataError(f"no market found for {query}")
        return data[0]

    # ------------------------------------------------------------------
    # CLOB API (order book)
    # ------------------------------------------------------------------

    async def get_orderbook(self, token_id: str) -> dict:
        """Get current order book ({bids: [...], asks: [...]}) for a token."""
        resp = await self._client.get(f"{CLOB_URL}/book", params={"token_id": token_id})
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise MarketDataError(f"order book for {token_id} is not an object")
        return data

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()
