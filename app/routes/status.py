"""
app/routes/status.py
Status and snapshot endpoints for the running paper trader.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from app.services.paper_trader import PaperTrader

logger = logging.getLogger(__name__)
router = APIRouter(tags=["status"])


# ------------------------------------------------------------------
# Response models
# ------------------------------------------------------------------

class StatusResponse(BaseModel):
    """Response for GET /status."""
    balance: float
    starting_balance: float
    open_positions: int
    total_positions: int
    realized_pnl_no_fees: float
    realized_pnl_with_fees: float
    state: str


class SnapshotResponse(BaseModel):
    """Response for GET/POST /snapshot."""
    exported: int
    realized_pnl: float


# ------------------------------------------------------------------
# Dependency
# ------------------------------------------------------------------

def get_trader(request: Request) -> PaperTrader:
    trader = getattr(request.app.state, "trader", None)
    if trader is None:
        raise HTTPException(status_code=503, detail="No trading run attached")
    return trader


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/status", response_model=StatusResponse)
async def status(trader: PaperTrader = Depends(get_trader)) -> StatusResponse:
    """Current balance and open-position count."""
    return StatusResponse(**trader.status())


@router.api_route("/snapshot", methods=["GET", "POST"], response_model=SnapshotResponse)
async def snapshot(trader: PaperTrader = Depends(get_trader)) -> SnapshotResponse:
    """Export the snapshot of closed positions."""
    return SnapshotResponse(**(await trader.export_snapshot()))
