"""
app/services/allocator.py
Equal-split budget allocation: seeds the ledger with simulated fills
against each opportunity's best ask.

Opening fills are kept in memory only; the ledger sink sees a position
for the first time when it exits or settles.
"""

import logging
import math

from app.services.ledger import Ledger, Position
from database.models import Opportunity

logger = logging.getLogger(__name__)


def _valid_positive(value: float) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def allocate(opportunities: list[Opportunity], budget: float, ledger: Ledger) -> list[Position]:
    """
    Split `budget` equally across `opportunities` and open one position each.

    fill_size = min(allocation / best_ask, ask_size). Opportunities with a
    non-positive or non-finite price or size are skipped without touching
    the balance. Returns the positions opened, in input order.
    """
    if not opportunities:
        logger.info("No eligible opportunities, nothing to allocate")
        return []

    allocation = budget / len(opportunities)
    logger.info(
        "Allocating budget $%.2f across %d markets ($%.2f each)",
        budget, len(opportunities), allocation,
    )

    opened: list[Position] = []
    for opp in opportunities:
        price = opp.best_ask
        available = opp.ask_size

        if not _valid_positive(price) or not _valid_positive(available):
            logger.warning(
                "Skipping %s %s: invalid ask (price=%r, size=%r)",
                opp.slug, opp.side.value, price, available,
            )
            continue

        fill_size = min(allocation / price, available)
        if fill_size <= 0:
            continue

        position = ledger.open_position(
            slug=opp.slug,
            market_id=opp.market_id,
            token_id=opp.token_id,
            side=opp.side,
            entry_price=price,
            size=fill_size,
            entry_probability=opp.probability,
            hours_to_close_at_entry=opp.hours_to_close,
        )
        opened.append(position)

        logger.info(
            "Filled %s side=%s price=%.4f size=%.2f cost=$%.2f hours_to_close=%s",
            opp.slug, opp.side.value, price, fill_size, position.cost, opp.hours_to_close,
        )

    logger.info(
        "Allocation complete: %d positions opened, balance $%.2f",
        len(opened), ledger.balance,
    )
    return opened
