"""
app/services/scanner_service.py
Market scanner: discovers open events, keeps the ones closing soon, and
emits one Opportunity per market side whose probability sits inside the
configured band and whose best ask carries enough liquidity.

The scanner output file is what the trader allocates against.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import httpx
from pydantic import ValidationError

from app.services.polymarket_client import (
    MarketDataError,
    PolymarketClient,
    parse_book_levels,
    parse_json_list,
)
from core.config import Settings
from database.models import Opportunity, PositionSide

logger = logging.getLogger(__name__)

SIDES: tuple[tuple[PositionSide, int], ...] = ((PositionSide.YES, 0), (PositionSide.NO, 1))


# ------------------------------------------------------------------
# Scan summary
# ------------------------------------------------------------------

class ScanResult:
    """Summary of a completed scan cycle."""

    def __init__(self) -> None:
        self.events_discovered: int = 0
        self.events_in_window: int = 0
        self.markets_checked: int = 0
        self.opportunities: list[Opportunity] = []
        self.errors: list[str] = []

    def to_dict(self) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "events_discovered": self.events_discovered,
            "events_in_window": self.events_in_window,
            "markets_checked": self.markets_checked,
            "errors": self.errors,
            "markets": [o.model_dump(mode="json") for o in self.opportunities],
        }


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def hours_until(iso: str, now: datetime | None = None) -> float:
    """Hours from `now` until the ISO-8601 timestamp `iso` (negative if past)."""
    end = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return (end - now).total_seconds() / 3600


def best_ask(book: dict) -> tuple[float, float] | None:
    """Lowest ask price and the total size resting at exactly that price."""
    asks = parse_book_levels(book, "asks")
    if not asks:
        return None
    low = min(price for price, _ in asks)
    size = sum(sz for price, sz in asks if price == low)
    return low, size


def _clean_event(event: dict) -> dict | None:
    """Keep id/slug/endDate and the markets that carry an id and slug."""
    if not event.get("id") or not event.get("slug") or not event.get("endDate"):
        return None
    markets = [
        {"id": str(m["id"]), "slug": m["slug"]}
        for m in event.get("markets") or []
        if isinstance(m, dict) and m.get("id") and m.get("slug")
    ]
    if not markets:
        return None
    return {
        "id": str(event["id"]),
        "slug": event["slug"],
        "title": event.get("title") or "",
        "endDate": event["endDate"],
        "markets": markets,
    }


# ------------------------------------------------------------------
# Discovery
# ------------------------------------------------------------------

async def discover_events(client: PolymarketClient, page_limit: int = 100) -> list[dict]:
    """Page through all open events until an empty page or a failed fetch."""
    discovered: list[dict] = []
    offset = 0
    page = 0

    while True:
        try:
            events = await client.get_events(limit=page_limit, offset=offset)
        except (httpx.HTTPError, MarketDataError) as exc:
            logger.warning("Event fetch failed at offset %d, stopping discovery: %s", offset, exc)
            break

        if not events:
            break

        page += 1
        for ev in events:
            cleaned = _clean_event(ev) if isinstance(ev, dict) else None
            if cleaned:
                discovered.append(cleaned)
        logger.debug("Discovery page %d: %d events (total kept %d)", page, len(events), len(discovered))
        offset += page_limit

    logger.info("Discovery complete: %d events", len(discovered))
    return discovered


# ------------------------------------------------------------------
# Eligibility scan
# ------------------------------------------------------------------

async def _scan_market(
    client: PolymarketClient,
    settings: Settings,
    event: dict,
    market_ref: dict,
    hours: float,
) -> list[Opportunity]:
    market = await client.get_market_by_slug(market_ref["slug"])
    prices = parse_json_list(market.get("outcomePrices"), "outcomePrices")
    tokens = parse_json_list(market.get("clobTokenIds"), "clobTokenIds")
    if len(prices) != 2 or len(tokens) != 2:
        return []

    found: list[Opportunity] = []
    for side, index in SIDES:
        try:
            prob = float(prices[index])
        except (TypeError, ValueError):
            continue
        if prob < settings.MIN_PROBABILITY or prob > settings.MAX_PROBABILITY:
            continue

        token_id = str(tokens[index])
        try:
            top = best_ask(await client.get_orderbook(token_id))
        except (httpx.HTTPError, MarketDataError) as exc:
            logger.warning("%s %s order book fetch failed: %s", market_ref["slug"], side.value, exc)
            continue
        if top is None:
            logger.debug("%s %s: no asks", market_ref["slug"], side.value)
            continue

        ask_price, ask_size = top
        liquidity = ask_price * ask_size
        if liquidity < settings.MIN_LIQUIDITY_USD:
            continue

        logger.info(
            "Eligible %s %s | ask %s | liquidity $%.2f | %.2fh to close",
            market_ref["slug"], side.value, ask_price, liquidity, hours,
        )
        found.append(Opportunity(
            slug=market_ref["slug"],
            market_id=str(market.get("id") or market_ref["id"]),
            token_id=token_id,
            side=side,
            best_ask=ask_price,
            ask_size=round(ask_size, 2),
            probability=prob,
            hours_to_close=round(hours, 2),
            event_slug=event["slug"],
            end_date=market.get("endDate") or event["endDate"],
            liquidity_usd=round(liquidity, 2),
        ))
    return found


async def run_scan(client: PolymarketClient, settings: Settings) -> ScanResult:
    """Discover events and collect every eligible opportunity."""
    result = ScanResult()
    events = await discover_events(client, settings.DISCOVERY_PAGE_LIMIT)
    result.events_discovered = len(events)

    for event in events:
        try:
            hours = hours_until(event["endDate"])
        except ValueError:
            result.errors.append(f"{event['slug']}: bad endDate {event['endDate']!r}")
            continue
        if hours <= 0 or hours > settings.MAX_HOURS_TO_CLOSE:
            continue
        result.events_in_window += 1

        for market_ref in event["markets"]:
            result.markets_checked += 1
            try:
                result.opportunities.extend(
                    await _scan_market(client, settings, event, market_ref, hours)
                )
            except (httpx.HTTPError, MarketDataError) as exc:
                logger.warning("Skipping market %s: %s", market_ref["slug"], exc)
                result.errors.append(f"{market_ref['slug']}: {exc}")

    logger.info(
        "Scan complete: %d events in window, %d markets checked, %d opportunities",
        result.events_in_window, result.markets_checked, len(result.opportunities),
    )
    return result


# ------------------------------------------------------------------
# Scanner output file
# ------------------------------------------------------------------

def save_scan(result: ScanResult, path: str | Path) -> None:
    Path(path).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
    logger.info("Scanner output saved to %s", path)


def load_opportunities(path: str | Path) -> list[Opportunity]:
    """
    Read opportunities from a scanner output file.

    A missing file, or one without a "markets" list, means nothing to
    trade. Entries may use snake_case or camelCase keys; entries that fail
    validation are skipped with a warning.
    """
    path = Path(path)
    if not path.exists():
        logger.warning("Scanner output %s not found", path)
        return []

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict) or not isinstance(data.get("markets") or [], list):
        logger.warning("Scanner output %s has no markets list, nothing to trade", path)
        return []

    opportunities: list[Opportunity] = []
    for raw in data.get("markets") or []:
        try:
            opportunities.append(Opportunity.model_validate(raw))
        except ValidationError as exc:
            slug = raw.get("slug") if isinstance(raw, dict) else raw
            logger.warning("Ignoring malformed opportunity %r: %s", slug, exc)
    return opportunities
