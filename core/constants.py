"""
core/constants.py
Hard-coded system constants.
These values are NOT configurable via environment.
"""

from typing import Final

# ---------------------------------------------------------------------------
# Market data endpoints (public, no auth)
# ---------------------------------------------------------------------------
GAMMA_URL: Final[str] = "https://gamma-api.polymarket.com"
CLOB_URL: Final[str] = "https://clob.polymarket.com"

# ---------------------------------------------------------------------------
# Position accounting
# ---------------------------------------------------------------------------
SIZE_EPSILON: Final[float] = 1e-9               # remaining size at or below this is zero
SETTLEMENT_VALUE: Final[float] = 1.0            # a winning contract pays one unit

# ---------------------------------------------------------------------------
# Ledger sink columns
# ---------------------------------------------------------------------------
TRADE_COLUMNS: Final[tuple[str, ...]] = (
    "trade_date",
    "slug",
    "side",
    "entry_price",
    "size",
    "cost",
    "hours_to_close_at_entry",
    "bought_at",
    "resolution",
    "resolved_at",
    "payout",
    "pnl_no_fees",
    "pnl_with_fees",
)

SNAPSHOT_COLUMNS: Final[tuple[str, ...]] = (
    "slug",
    "side",
    "entry_price",
    "size_remaining",
    "cost_remaining",
    "resolved",
    "resolution",
    "resolved_at",
    "payout",
    "pnl_no_fees",
    "pnl_with_fees",
)

CSV_DUMP_START: Final[str] = "===CSV_START==="
CSV_DUMP_END: Final[str] = "===CSV_END==="

# ---------------------------------------------------------------------------
# System
# ---------------------------------------------------------------------------
SYSTEM_VERSION: Final[str] = "v1.0-paper-trader"
