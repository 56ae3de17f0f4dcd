"""
tests/test_scanner.py
Tests for event discovery, the eligibility filters and the scanner
output file.
"""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.services.polymarket_client import PolymarketClient
from app.services.scanner_service import (
    best_ask,
    discover_events,
    hours_until,
    load_opportunities,
    run_scan,
    save_scan,
)
from database.models import PositionSide


def _iso_in(hours: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat().replace("+00:00", "Z")


class FakePolymarket:
    """Routes mocked Gamma/CLOB requests to canned payloads."""

    def __init__(self, events: list[dict], markets: dict[str, dict], books: dict[str, dict]) -> None:
        self.events = events
        self.markets = markets
        self.books = books

    def __call__(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if request.url.path == "/events":
            offset = int(params["offset"])
            return httpx.Response(200, json=self.events if offset == 0 else [])
        if request.url.path == "/markets":
            market = self.markets.get(params["slug"])
            return httpx.Response(200, json=[market] if market else [])
        if request.url.path == "/book":
            book = self.books.get(params["token_id"])
            if book is None:
                return httpx.Response(404)
            return httpx.Response(200, json=book)
        return httpx.Response(404)


class TestHelpers:
    def test_hours_until(self):
        now = datetime(2025, 1, 14, 12, 0, tzinfo=timezone.utc)
        assert hours_until("2025-01-14T13:30:00Z", now=now) == pytest.approx(1.5)
        assert hours_until("2025-01-14T11:00:00Z", now=now) == pytest.approx(-1.0)

    def test_best_ask_aggregates_lowest_price(self):
        book = {"asks": [
            {"price": "0.92", "size": "5"},
            {"price": "0.90", "size": "3"},
            {"price": "0.90", "size": "7"},
        ]}
        assert best_ask(book) == (0.90, 10.0)
        assert best_ask({"asks": []}) is None


@pytest.mark.asyncio
class TestScan:
    async def test_discovery_filters_incomplete_events(self):
        events = [
            {"id": 1, "slug": "ok", "endDate": _iso_in(1), "markets": [{"id": 10, "slug": "ok-m"}]},
            {"id": 2, "slug": "no-end", "markets": [{"id": 11, "slug": "x"}]},
            {"id": 3, "slug": "no-markets", "endDate": _iso_in(1), "markets": []},
            {"id": 4, "slug": "bad-market", "endDate": _iso_in(1), "markets": [{"slug": "no-id"}]},
        ]
        client = PolymarketClient(http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(FakePolymarket(events, {}, {}))
        ))

        discovered = await discover_events(client, page_limit=100)
        await client.close()

        assert [e["slug"] for e in discovered] == ["ok"]
        assert discovered[0]["markets"] == [{"id": "10", "slug": "ok-m"}]

    async def test_run_scan_emits_eligible_sides(self, settings):
        events = [
            {"id": 1, "slug": "soon", "endDate": _iso_in(1), "markets": [
                {"id": 10, "slug": "btc-above-100k"},
                {"id": 11, "slug": "thin-book"},
            ]},
            {"id": 2, "slug": "later", "endDate": _iso_in(10), "markets": [{"id": 12, "slug": "far"}]},
        ]
        markets = {
            "btc-above-100k": {"id": "10", "outcomePrices": '["0.90", "0.10"]', "clobTokenIds": '["yes-10", "no-10"]'},
            "thin-book": {"id": "11", "outcomePrices": '["0.05", "0.95"]', "clobTokenIds": '["yes-11", "no-11"]'},
        }
        books = {
            "yes-10": {"bids": [], "asks": [{"price": "0.91", "size": "20"}, {"price": "0.91", "size": "5"}]},
            "no-11": {"bids": [], "asks": [{"price": "0.95", "size": "2"}]},
        }
        client = PolymarketClient(http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(FakePolymarket(events, markets, books))
        ))

        result = await run_scan(client, settings)
        await client.close()

        assert result.events_discovered == 2
        assert result.events_in_window == 1
        assert result.markets_checked == 2
        assert len(result.opportunities) == 1

        opp = result.opportunities[0]
        assert opp.slug == "btc-above-100k"
        assert opp.market_id == "10"
        assert opp.token_id == "yes-10"
        assert opp.side == PositionSide.YES
        assert opp.best_ask == 0.91
        assert opp.ask_size == 25.0
        assert opp.probability == 0.90
        assert 0 < opp.hours_to_close <= 1.0
        assert opp.liquidity_usd == pytest.approx(22.75)

    async def test_market_fetch_failure_is_recorded(self, settings):
        events = [{"id": 1, "slug": "soon", "endDate": _iso_in(1), "markets": [{"id": 10, "slug": "gone"}]}]
        client = PolymarketClient(http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(FakePolymarket(events, {}, {}))
        ))

        result = await run_scan(client, settings)
        await client.close()

        assert result.opportunities == []
        assert len(result.errors) == 1


class TestScannerOutput:
    def test_missing_file_means_no_opportunities(self, tmp_path):
        assert load_opportunities(tmp_path / "nope.json") == []

    def test_malformed_entries_are_skipped(self, tmp_path):
        path = tmp_path / "scanner.json"
        path.write_text(json.dumps({"markets": [
            {"slug": "good", "market_id": "1", "token_id": "t", "side": "NO",
             "best_ask": 0.9, "ask_size": 10, "probability": 0.9, "hours_to_close": 1.2},
            {"slug": "bad", "side": "MAYBE"},
        ]}))

        opportunities = load_opportunities(path)

        assert [o.slug for o in opportunities] == ["good"]
        assert opportunities[0].side == PositionSide.NO

    def test_camel_case_scanner_file(self, tmp_path):
        path = tmp_path / "scanner-output.json"
        path.write_text(json.dumps({"markets": [
            {"slug": "btc-above-100k", "marketId": "10", "tokenId": "yes-10", "side": "YES",
             "bestAsk": 0.91, "askSize": 25, "probability": 0.9, "hoursToClose": 1.4},
        ]}))

        opportunities = load_opportunities(path)

        assert len(opportunities) == 1
        opp = opportunities[0]
        assert opp.market_id == "10"
        assert opp.token_id == "yes-10"
        assert opp.best_ask == 0.91
        assert opp.ask_size == 25.0
        assert opp.hours_to_close == 1.4

    @pytest.mark.parametrize("payload", [[{"slug": "a"}], {"markets": {"slug": "a"}}, "markets"])
    def test_unexpected_layout_means_no_opportunities(self, tmp_path, payload):
        path = tmp_path / "scanner.json"
        path.write_text(json.dumps(payload))

        assert load_opportunities(path) == []

    def test_saved_scan_loads_back(self, tmp_path):
        from app.services.scanner_service import ScanResult
        from database.models import Opportunity

        result = ScanResult()
        result.opportunities.append(Opportunity(
            slug="s", market_id="1", token_id="t", side=PositionSide.YES,
            best_ask=0.9, ask_size=10.0, probability=0.9, hours_to_close=1.0,
        ))
        path = tmp_path / "scanner.json"

        save_scan(result, path)

        assert load_opportunities(path) == result.opportunities
