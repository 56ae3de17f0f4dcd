"""
database/models.py
Shared enums, the scanner Opportunity record, and the SQLModel tables
backing the sqlite ledger sink.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel
from sqlmodel import SQLModel, Field


def _utcnow() -> datetime:
    """Timezone-aware UTC now (replaces the deprecated utcnow call)."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PositionSide(str, Enum):
    YES = "YES"
    NO = "NO"


class PositionStatus(str, Enum):
    OPEN = "OPEN"
    PARTIALLY_EXITED = "PARTIALLY_EXITED"
    CLOSED = "CLOSED"


class Resolution(str, Enum):
    YES = "YES"
    NO = "NO"
    STOP_LOSS = "STOP_LOSS"


# ---------------------------------------------------------------------------
# Opportunity: one tradeable contract side produced by the scanner
# ---------------------------------------------------------------------------

class Opportunity(SQLModel):
    """
    A candidate contract side identified as eligible to trade.

    Validates from either snake_case keys (what `save_scan` writes) or the
    camelCase keys of older scanner files (`marketId`, `bestAsk`, ...).
    Dumps use the snake_case field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    slug: str
    market_id: str
    token_id: str
    side: PositionSide

    # Top of the ask book at discovery time
    best_ask: float
    ask_size: float

    # Implied probability of `side` at discovery time
    probability: float
    hours_to_close: Optional[float] = None

    # Scanner context (informational)
    event_slug: Optional[str] = None
    end_date: Optional[str] = None
    liquidity_usd: Optional[float] = None


# ---------------------------------------------------------------------------
# TradeRecord: one closing or partial-exit event
# ---------------------------------------------------------------------------

class TradeRecord(SQLModel, table=True):
    """Append-only trade row written at every stop-loss exit or settlement."""

    id: Optional[int] = Field(default=None, primary_key=True)
    bot_name: str = Field(index=True)

    trade_date: str
    slug: str
    side: PositionSide
    entry_price: float
    size: float
    cost: float
    hours_to_close_at_entry: Optional[float] = None
    bought_at: datetime

    resolution: Resolution
    resolved_at: datetime
    payout: float
    pnl_no_fees: float
    pnl_with_fees: float

    recorded_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# SnapshotRecord: point-in-time export of closed positions
# ---------------------------------------------------------------------------

class SnapshotRecord(SQLModel, table=True):
    """One closed position as of the latest snapshot export."""

    id: Optional[int] = Field(default=None, primary_key=True)
    bot_name: str = Field(index=True)

    slug: str
    side: PositionSide
    entry_price: float
    size_remaining: float
    cost_remaining: float
    resolved: bool = True
    resolution: Optional[Resolution] = None
    resolved_at: Optional[datetime] = None
    payout: Optional[float] = None
    pnl_no_fees: Optional[float] = None
    pnl_with_fees: Optional[float] = None

    exported_at: datetime = Field(default_factory=_utcnow)
