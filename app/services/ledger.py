"""
app/services/ledger.py
In-memory position ledger: the wallet balance, the ordered list of
positions, and realized P&L for one trading run.

The ledger is owned by the trading run and handed to each component.
All balance and position mutation happens under `ledger.lock`, so
snapshot exports and status reads never observe a half-applied exit.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from core.constants import SIZE_EPSILON
from database.models import PositionSide, PositionStatus, Resolution


@dataclass
class Position:
    """A simulated holding of contract units on one side of one market."""

    id: int
    slug: str
    market_id: str
    token_id: str
    side: PositionSide

    entry_price: float
    size: float                 # remaining contract units
    cost: float                 # remaining cost basis
    entry_probability: float
    hours_to_close_at_entry: Optional[float]
    bought_at: datetime

    initial_size: float = 0.0
    initial_cost: float = 0.0
    status: PositionStatus = PositionStatus.OPEN

    # Last closing event (a later stop-loss exit or settlement overwrites these)
    resolution: Optional[Resolution] = None
    resolved_at: Optional[datetime] = None
    payout: Optional[float] = None
    pnl_no_fees: Optional[float] = None
    pnl_with_fees: Optional[float] = None

    @property
    def is_closed(self) -> bool:
        return self.status == PositionStatus.CLOSED

    def reduce(self, exit_size: float, cost_portion: float) -> None:
        """Draw down remaining size and cost basis after a partial exit."""
        self.size = max(self.size - exit_size, 0.0)
        self.cost = max(self.cost - cost_portion, 0.0)
        if self.size <= SIZE_EPSILON:
            self.size = 0.0
            self.cost = 0.0

    def record_close_event(
        self,
        resolution: Resolution,
        payout: float,
        pnl_no_fees: float,
        pnl_with_fees: float,
        resolved_at: datetime,
    ) -> None:
        self.resolution = resolution
        self.resolved_at = resolved_at
        self.payout = payout
        self.pnl_no_fees = pnl_no_fees
        self.pnl_with_fees = pnl_with_fees

    def close(self) -> None:
        self.status = PositionStatus.CLOSED


class Ledger:
    """Wallet balance plus positions in allocation order."""

    def __init__(self, starting_balance: float) -> None:
        self.starting_balance = starting_balance
        self.balance = starting_balance
        self.positions: list[Position] = []
        self.realized_pnl_no_fees = 0.0
        self.realized_pnl_with_fees = 0.0
        self.lock = asyncio.Lock()
        self._next_id = 1

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def open_position(
        self,
        *,
        slug: str,
        market_id: str,
        token_id: str,
        side: PositionSide,
        entry_price: float,
        size: float,
        entry_probability: float,
        hours_to_close_at_entry: Optional[float],
    ) -> Position:
        """Debit the fill cost and append a new OPEN position."""
        cost = size * entry_price
        position = Position(
            id=self._next_id,
            slug=slug,
            market_id=market_id,
            token_id=token_id,
            side=side,
            entry_price=entry_price,
            size=size,
            cost=cost,
            entry_probability=entry_probability,
            hours_to_close_at_entry=hours_to_close_at_entry,
            bought_at=datetime.now(timezone.utc),
            initial_size=size,
            initial_cost=cost,
        )
        self._next_id += 1
        self.balance -= cost
        self.positions.append(position)
        return position

    def credit(self, amount: float) -> None:
        self.balance += amount

    def record_realized(self, pnl_no_fees: float, pnl_with_fees: float) -> None:
        self.realized_pnl_no_fees += pnl_no_fees
        self.realized_pnl_with_fees += pnl_with_fees

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def open_positions(self) -> list[Position]:
        return [p for p in self.positions if not p.is_closed]

    def closed_positions(self) -> list[Position]:
        return [p for p in self.positions if p.is_closed]

    def get(self, position_id: int) -> Position | None:
        for position in self.positions:
            if position.id == position_id:
                return position
        return None

    @property
    def all_closed(self) -> bool:
        return all(p.is_closed for p in self.positions)

    def status(self) -> dict:
        """Current balance and position counts."""
        return {
            "balance": round(self.balance, 2),
            "starting_balance": round(self.starting_balance, 2),
            "open_positions": len(self.open_positions()),
            "total_positions": len(self.positions),
            "realized_pnl_no_fees": round(self.realized_pnl_no_fees, 2),
            "realized_pnl_with_fees": round(self.realized_pnl_with_fees, 2),
        }
