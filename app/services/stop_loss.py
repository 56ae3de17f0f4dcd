"""
app/services/stop_loss.py
Per-position stop-loss: exit early when the held side's implied
probability has dropped at least STOP_PROB_DROP below its entry value.

Exits sell into the bid side of the held token's book at the best bid,
up to the size resting at that price. Anything left over stays open and
is checked again on the next tick.
"""

import logging
from datetime import datetime, timezone

from app.services.ledger import Ledger, Position
from app.services.ledger_sink import TradeRow
from app.services.polymarket_client import MarketDataError, parse_book_levels
from core.constants import SIZE_EPSILON
from database.models import PositionSide, PositionStatus, Resolution

logger = logging.getLogger(__name__)


def current_probability(side: PositionSide, outcome_prices: list[str]) -> float:
    """Implied probability of `side`; outcome_prices[0] is the YES price."""
    try:
        yes_prob = float(outcome_prices[0])
    except (IndexError, TypeError, ValueError) as exc:
        raise MarketDataError(f"unparseable YES price in {outcome_prices!r}") from exc
    return yes_prob if side == PositionSide.YES else 1.0 - yes_prob


def probability_drop(position: Position, outcome_prices: list[str]) -> float:
    return position.entry_probability - current_probability(position.side, outcome_prices)


def is_triggered(position: Position, outcome_prices: list[str], threshold: float) -> bool:
    """True when the probability drop reaches the threshold (rounded to absorb float noise)."""
    return round(probability_drop(position, outcome_prices), 9) >= threshold


def best_bid(book: dict) -> tuple[float, float] | None:
    """
    Highest bid price and the total size resting at exactly that price.

    Returns None when the book has no bids.
    """
    bids = parse_book_levels(book, "bids")
    if not bids:
        return None
    top = max(price for price, _ in bids)
    size = sum(sz for price, sz in bids if price == top)
    return top, size


def apply_stop_loss(
    ledger: Ledger,
    position: Position,
    book: dict,
    fee_rate: float,
    now: datetime | None = None,
) -> TradeRow | None:
    """
    Sell as much of `position` as the best bid absorbs.

    Credits the ledger, draws down size and cost basis proportionally and
    overwrites the position's close-event fields with this exit's figures.
    Returns the trade row to record, or None if nothing was sold.
    """
    if position.is_closed or position.size <= SIZE_EPSILON:
        return None

    top = best_bid(book)
    if top is None:
        logger.warning("Stop-loss %s: no bids available, retrying next tick", position.slug)
        return None

    bid_price, bid_size = top
    exit_size = min(position.size, bid_size)
    if exit_size <= 0 or bid_price <= 0:
        logger.warning(
            "Stop-loss %s: no usable bid liquidity (price=%s size=%s)",
            position.slug, bid_price, bid_size,
        )
        return None

    now = now or datetime.now(timezone.utc)
    payout = exit_size * bid_price
    cost_portion = (exit_size / position.size) * position.cost
    pnl_no_fees = payout - cost_portion
    pnl_with_fees = payout - cost_portion - payout * fee_rate

    ledger.credit(payout)
    ledger.record_realized(pnl_no_fees, pnl_with_fees)
    position.reduce(exit_size, cost_portion)
    position.record_close_event(
        Resolution.STOP_LOSS, payout, pnl_no_fees, pnl_with_fees, resolved_at=now,
    )

    if position.size <= SIZE_EPSILON:
        position.close()
    else:
        position.status = PositionStatus.PARTIALLY_EXITED

    logger.info(
        "STOP EXIT %s: sold %.4f @ %s payout=$%.2f pnl=$%.2f remaining=%.4f",
        position.slug, exit_size, bid_price, payout, pnl_no_fees, position.size,
    )

    return TradeRow.for_exit(
        position,
        size=exit_size,
        cost=cost_portion,
        resolution=Resolution.STOP_LOSS,
        resolved_at=now,
        payout=payout,
        pnl_no_fees=pnl_no_fees,
        pnl_with_fees=pnl_with_fees,
    )
