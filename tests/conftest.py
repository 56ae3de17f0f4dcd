"""
tests/conftest.py
Shared fixtures for the test suite.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import database.models as _models  # noqa: F401 (registers table metadata)
from app.services.ledger import Ledger, Position
from core.config import Settings
from database.models import PositionSide


class FakeGateway:
    """
    In-memory market data gateway.

    `markets` maps market id -> payload dict or an exception to raise;
    `books` maps token id -> order book dict or an exception to raise.
    """

    def __init__(self) -> None:
        self.markets: dict[str, object] = {}
        self.books: dict[str, object] = {}
        self.market_calls: list[str] = []
        self.book_calls: list[str] = []

    async def get_market_by_id(self, market_id: str) -> dict:
        self.market_calls.append(market_id)
        value = self.markets[market_id]
        if isinstance(value, Exception):
            raise value
        return value

    async def get_orderbook(self, token_id: str) -> dict:
        self.book_calls.append(token_id)
        value = self.books.get(token_id, {"bids": [], "asks": []})
        if isinstance(value, Exception):
            raise value
        return value


class RecordingSink:
    """Ledger sink that keeps everything in lists."""

    def __init__(self) -> None:
        self.rows: list = []
        self.snapshots: list[list[Position]] = []

    async def append_row(self, row) -> None:
        self.rows.append(row)

    async def export_snapshot(self, positions: list[Position]) -> int:
        closed = [p for p in positions if p.is_closed]
        self.snapshots.append(closed)
        return len(closed)

    async def dump(self) -> str:
        return "\n".join(r.slug for r in self.rows)


def market_payload(market_id: str, prices: list[str], closed: bool = False) -> dict:
    """Gamma market payload with JSON-encoded outcome prices."""
    return {
        "id": market_id,
        "closed": closed,
        "outcomePrices": "[" + ",".join(f'"{p}"' for p in prices) + "]",
    }


def make_position(ledger: Ledger | None = None, **overrides) -> Position:
    """Position with sensible defaults; appended to `ledger` when given."""
    defaults = dict(
        id=1,
        slug="btc-above-100k",
        market_id="m1",
        token_id="t1",
        side=PositionSide.YES,
        entry_price=0.90,
        size=10.0,
        cost=9.0,
        entry_probability=0.90,
        hours_to_close_at_entry=1.5,
        bought_at=datetime(2025, 1, 14, 12, 0, tzinfo=timezone.utc),
        initial_size=10.0,
        initial_cost=9.0,
    )
    defaults.update(overrides)
    position = Position(**defaults)
    if ledger is not None:
        ledger.positions.append(position)
    return position


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        BOT_NAME="test",
        TOTAL_BUDGET=50.0,
        STOP_PROB_DROP=0.15,
        FEE_RATE=0.01,
        POLL_INTERVAL_SECONDS=0.01,
        LEDGER_CSV_PATH=str(tmp_path / "trades.csv"),
        SNAPSHOT_CSV_PATH=str(tmp_path / "snapshot.csv"),
        SCANNER_OUTPUT_PATH=str(tmp_path / "scanner.json"),
    )


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(starting_balance=50.0)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest_asyncio.fixture
async def async_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite session factory shared by every session it opens."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def async_db_session(async_session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Provide an in-memory SQLite async session for tests."""
    async with async_session_factory() as session:
        yield session
