"""
app/services/resolution_service.py
Settles positions whose market has closed with a final outcome.

A closed market is final only once one outcome price is exactly "1";
closed-but-not-finalized markets are skipped and checked again next tick.
"""

import logging
from datetime import datetime, timezone

from app.services.ledger import Ledger, Position
from app.services.ledger_sink import TradeRow
from app.services.polymarket_client import parse_outcome_prices
from core.constants import SETTLEMENT_VALUE
from database.models import PositionSide, Resolution

logger = logging.getLogger(__name__)


def parse_resolution(market: dict) -> Resolution | None:
    """
    Terminal outcome of a market, or None while it is open or not finalized.

    Raises MarketDataError when a closed market has unusable outcome prices.
    """
    if not market.get("closed"):
        return None

    prices = parse_outcome_prices(market)
    if prices[0] == "1":
        return Resolution.YES
    if prices[1] == "1":
        return Resolution.NO

    logger.debug("Market %s closed but not finalized: %s", market.get("id"), prices)
    return None


def _side_wins(side: PositionSide, resolution: Resolution) -> bool:
    return side.value == resolution.value


def settle_position(
    ledger: Ledger,
    position: Position,
    market: dict,
    fee_rate: float,
    now: datetime | None = None,
) -> TradeRow | None:
    """
    Settle the remaining size of `position` if its market has resolved.

    Winning contracts pay SETTLEMENT_VALUE each, losing ones nothing.
    Closed positions are never settled twice. Returns the trade row to
    record, or None when nothing happened.
    """
    if position.is_closed:
        return None

    resolution = parse_resolution(market)
    if resolution is None:
        return None

    now = now or datetime.now(timezone.utc)
    payout = position.size * SETTLEMENT_VALUE if _side_wins(position.side, resolution) else 0.0
    fee = payout * fee_rate
    pnl_no_fees = payout - position.cost
    pnl_with_fees = pnl_no_fees - fee

    ledger.credit(payout)
    ledger.record_realized(pnl_no_fees, pnl_with_fees)
    position.record_close_event(resolution, payout, pnl_no_fees, pnl_with_fees, resolved_at=now)
    position.close()

    logger.info(
        "RESOLVED %s: side=%s result=%s payout=$%.2f pnl=$%.2f (with fees $%.2f)",
        position.slug, position.side.value, resolution.value, payout, pnl_no_fees, pnl_with_fees,
    )

    return TradeRow.for_exit(
        position,
        size=position.size,
        cost=position.cost,
        resolution=resolution,
        resolved_at=now,
        payout=payout,
        pnl_no_fees=pnl_no_fees,
        pnl_with_fees=pnl_with_fees,
    )
