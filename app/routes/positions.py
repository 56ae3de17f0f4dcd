"""
app/routes/positions.py
Read-only position endpoints: list positions and summarize the run.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from app.routes.status import get_trader
from app.services.ledger import Position
from app.services.paper_trader import PaperTrader
from database.models import PositionStatus

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/positions", tags=["positions"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class PositionRow(BaseModel):
    """A single position."""
    id: int
    slug: str
    market_id: str
    side: str
    entry_price: float
    entry_probability: float
    size_remaining: float
    cost_remaining: float
    initial_size: float
    initial_cost: float
    status: str
    resolution: str | None
    resolved_at: str | None
    payout: float | None
    pnl_no_fees: float | None
    pnl_with_fees: float | None
    bought_at: str


class PositionsResponse(BaseModel):
    """Response for GET /positions."""
    count: int
    positions: list[PositionRow]


class PortfolioSummary(BaseModel):
    """Response for GET /positions/summary."""
    total_positions: int
    open_positions: int
    closed_positions: int
    total_invested: float
    balance: float
    realized_pnl_no_fees: float
    realized_pnl_with_fees: float
    win_rate: float | None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _position_to_row(p: Position) -> PositionRow:
    return PositionRow(
        id=p.id,
        slug=p.slug,
        market_id=p.market_id,
        side=p.side.value,
        entry_price=p.entry_price,
        entry_probability=p.entry_probability,
        size_remaining=round(p.size, 4),
        cost_remaining=round(p.cost, 2),
        initial_size=round(p.initial_size, 4),
        initial_cost=round(p.initial_cost, 2),
        status=p.status.value,
        resolution=p.resolution.value if p.resolution else None,
        resolved_at=p.resolved_at.isoformat() if p.resolved_at else None,
        payout=round(p.payout, 2) if p.payout is not None else None,
        pnl_no_fees=round(p.pnl_no_fees, 2) if p.pnl_no_fees is not None else None,
        pnl_with_fees=round(p.pnl_with_fees, 2) if p.pnl_with_fees is not None else None,
        bought_at=p.bought_at.isoformat(),
    )


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("", response_model=PositionsResponse)
async def list_positions(
    status: PositionStatus | None = Query(None, description="Filter by status: OPEN, PARTIALLY_EXITED, CLOSED"),
    trader: PaperTrader = Depends(get_trader),
) -> PositionsResponse:
    """List positions in allocation order, optionally filtered by status."""
    rows = [
        _position_to_row(p)
        for p in trader.ledger.positions
        if status is None or p.status == status
    ]
    return PositionsResponse(count=len(rows), positions=rows)


@router.get("/summary", response_model=PortfolioSummary)
async def portfolio_summary(trader: PaperTrader = Depends(get_trader)) -> PortfolioSummary:
    """Run summary: invested capital, balance, realized P&L, win rate."""
    ledger = trader.ledger
    closed = ledger.closed_positions()
    settled = [p for p in closed if p.pnl_with_fees is not None]
    wins = [p for p in settled if p.pnl_with_fees > 0]

    return PortfolioSummary(
        total_positions=len(ledger.positions),
        open_positions=len(ledger.open_positions()),
        closed_positions=len(closed),
        total_invested=round(sum(p.initial_cost for p in ledger.positions), 2),
        balance=round(ledger.balance, 2),
        realized_pnl_no_fees=round(ledger.realized_pnl_no_fees, 2),
        realized_pnl_with_fees=round(ledger.realized_pnl_with_fees, 2),
        win_rate=round(len(wins) / len(settled), 4) if settled else None,
    )


@router.get("/{position_id}", response_model=PositionRow)
async def get_position(position_id: int, trader: PaperTrader = Depends(get_trader)) -> PositionRow:
    """A single position by id."""
    position = trader.ledger.get(position_id)
    if position is None:
        raise HTTPException(status_code=404, detail="Position not found")
    return _position_to_row(position)
