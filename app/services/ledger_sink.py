"""
app/services/ledger_sink.py
Where closed trades go: an append-only trade row stream plus a
point-in-time snapshot of every closed position.

Two implementations share the LedgerSink interface:
  - CsvLedgerSink: the trade CSV and the snapshot CSV on disk
  - SqlLedgerSink: TradeRecord / SnapshotRecord tables via SQLModel
"""

import csv
import io
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.services.ledger import Position
from core.constants import SNAPSHOT_COLUMNS, TRADE_COLUMNS
from database.models import PositionSide, Resolution, SnapshotRecord, TradeRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Row types and formatting
# ------------------------------------------------------------------

def _money(value: Optional[float]) -> str:
    return "" if value is None else f"{value:.2f}"


def _iso(value: Optional[datetime]) -> str:
    return "" if value is None else value.isoformat()


@dataclass(frozen=True)
class TradeRow:
    """One stop-loss exit or final settlement."""

    trade_date: str
    slug: str
    side: PositionSide
    entry_price: float
    size: float
    cost: float
    hours_to_close_at_entry: Optional[float]
    bought_at: datetime
    resolution: Resolution
    resolved_at: datetime
    payout: float
    pnl_no_fees: float
    pnl_with_fees: float

    @classmethod
    def for_exit(
        cls,
        position: Position,
        *,
        size: float,
        cost: float,
        resolution: Resolution,
        resolved_at: datetime,
        payout: float,
        pnl_no_fees: float,
        pnl_with_fees: float,
    ) -> "TradeRow":
        return cls(
            trade_date=resolved_at.date().isoformat(),
            slug=position.slug,
            side=position.side,
            entry_price=position.entry_price,
            size=size,
            cost=cost,
            hours_to_close_at_entry=position.hours_to_close_at_entry,
            bought_at=position.bought_at,
            resolution=resolution,
            resolved_at=resolved_at,
            payout=payout,
            pnl_no_fees=pnl_no_fees,
            pnl_with_fees=pnl_with_fees,
        )

    def csv_values(self) -> list[str]:
        return [
            self.trade_date,
            self.slug,
            self.side.value,
            str(self.entry_price),
            f"{self.size:.4f}",
            _money(self.cost),
            "" if self.hours_to_close_at_entry is None else str(self.hours_to_close_at_entry),
            _iso(self.bought_at),
            self.resolution.value,
            _iso(self.resolved_at),
            _money(self.payout),
            _money(self.pnl_no_fees),
            _money(self.pnl_with_fees),
        ]


def snapshot_values(position: Position) -> list[str]:
    """One snapshot CSV row for a closed position."""
    return [
        position.slug,
        position.side.value,
        str(position.entry_price),
        f"{position.size:.4f}",
        _money(position.cost),
        "true" if position.is_closed else "false",
        position.resolution.value if position.resolution else "",
        _iso(position.resolved_at),
        _money(position.payout),
        _money(position.pnl_no_fees),
        _money(position.pnl_with_fees),
    ]


def render_csv(header: Iterable[str], rows: Iterable[list[str]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue()


# ------------------------------------------------------------------
# Interface
# ------------------------------------------------------------------

class LedgerSink(Protocol):
    async def append_row(self, row: TradeRow) -> None: ...

    async def export_snapshot(self, positions: list[Position]) -> int: ...

    async def dump(self) -> str: ...


# ------------------------------------------------------------------
# CSV files
# ------------------------------------------------------------------

class CsvLedgerSink:
    """Trade rows appended to one CSV file; snapshots overwrite another."""

    def __init__(self, trades_path: str | Path, snapshot_path: str | Path) -> None:
        self.trades_path = Path(trades_path)
        self.snapshot_path = Path(snapshot_path)
        self._ensure_header()

    def _ensure_header(self) -> None:
        if self.trades_path.exists() and self.trades_path.stat().st_size > 0:
            return
        self.trades_path.parent.mkdir(parents=True, exist_ok=True)
        with self.trades_path.open("w", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(TRADE_COLUMNS)

    async def append_row(self, row: TradeRow) -> None:
        with self.trades_path.open("a", newline="", encoding="utf-8") as f:
            csv.writer(f, lineterminator="\n").writerow(row.csv_values())

    async def export_snapshot(self, positions: list[Position]) -> int:
        rows = [snapshot_values(p) for p in positions if p.is_closed]
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        self.snapshot_path.write_text(render_csv(SNAPSHOT_COLUMNS, rows), encoding="utf-8")
        return len(rows)

    async def dump(self) -> str:
        if not self.trades_path.exists():
            logger.warning("Trade CSV %s not found", self.trades_path)
            return ""
        return self.trades_path.read_text(encoding="utf-8")


# ------------------------------------------------------------------
# SQL tables
# ------------------------------------------------------------------

class SqlLedgerSink:
    """Trade rows and snapshots stored through SQLModel, scoped by bot name."""

    def __init__(self, session_factory: Callable[[], AsyncSession], bot_name: str) -> None:
        self._session_factory = session_factory
        self.bot_name = bot_name

    async def append_row(self, row: TradeRow) -> None:
        record = TradeRecord(
            bot_name=self.bot_name,
            trade_date=row.trade_date,
            slug=row.slug,
            side=row.side,
            entry_price=row.entry_price,
            size=round(row.size, 4),
            cost=round(row.cost, 2),
            hours_to_close_at_entry=row.hours_to_close_at_entry,
            bought_at=row.bought_at,
            resolution=row.resolution,
            resolved_at=row.resolved_at,
            payout=round(row.payout, 2),
            pnl_no_fees=round(row.pnl_no_fees, 2),
            pnl_with_fees=round(row.pnl_with_fees, 2),
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()

    async def export_snapshot(self, positions: list[Position]) -> int:
        records = [
            SnapshotRecord(
                bot_name=self.bot_name,
                slug=p.slug,
                side=p.side,
                entry_price=p.entry_price,
                size_remaining=round(p.size, 4),
                cost_remaining=round(p.cost, 2),
                resolved=True,
                resolution=p.resolution,
                resolved_at=p.resolved_at,
                payout=None if p.payout is None else round(p.payout, 2),
                pnl_no_fees=None if p.pnl_no_fees is None else round(p.pnl_no_fees, 2),
                pnl_with_fees=None if p.pnl_with_fees is None else round(p.pnl_with_fees, 2),
            )
            for p in positions
            if p.is_closed
        ]
        async with self._session_factory() as session:
            await session.execute(
                delete(SnapshotRecord).where(SnapshotRecord.bot_name == self.bot_name)
            )
            session.add_all(records)
            await session.commit()
        return len(records)

    async def dump(self) -> str:
        async with self._session_factory() as session:
            records = (await session.execute(
                select(TradeRecord)
                .where(TradeRecord.bot_name == self.bot_name)
                .order_by(TradeRecord.id)
            )).scalars().all()

        rows = [
            TradeRow(
                trade_date=r.trade_date,
                slug=r.slug,
                side=r.side,
                entry_price=r.entry_price,
                size=r.size,
                cost=r.cost,
                hours_to_close_at_entry=r.hours_to_close_at_entry,
                bought_at=r.bought_at,
                resolution=r.resolution,
                resolved_at=r.resolved_at,
                payout=r.payout,
                pnl_no_fees=r.pnl_no_fees,
                pnl_with_fees=r.pnl_with_fees,
            ).csv_values()
            for r in records
        ]
        return render_csv(TRADE_COLUMNS, rows)
