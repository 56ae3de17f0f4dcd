"""
tests/test_stop_loss.py
Tests for the stop-loss trigger and the partial exits it fills against
the bid book.
"""

from datetime import datetime, timezone

import pytest

from app.services.ledger import Ledger
from app.services.polymarket_client import MarketDataError
from app.services.stop_loss import (
    apply_stop_loss,
    best_bid,
    current_probability,
    is_triggered,
)
from database.models import PositionSide, PositionStatus, Resolution
from tests.conftest import make_position

NOW = datetime(2025, 1, 14, 13, 0, tzinfo=timezone.utc)


def _book(*bids: tuple[str, str]) -> dict:
    return {"bids": [{"price": p, "size": s} for p, s in bids], "asks": []}


class TestTrigger:
    def test_current_probability_by_side(self):
        assert current_probability(PositionSide.YES, ["0.8", "0.2"]) == pytest.approx(0.8)
        assert current_probability(PositionSide.NO, ["0.8", "0.2"]) == pytest.approx(0.2)

    def test_unparseable_price_raises(self):
        with pytest.raises(MarketDataError):
            current_probability(PositionSide.YES, ["n/a", "0.2"])

    def test_small_drop_does_not_trigger(self):
        position = make_position(entry_probability=0.90)
        assert is_triggered(position, ["0.80", "0.20"], 0.15) is False

    def test_drop_equal_to_threshold_triggers(self):
        position = make_position(entry_probability=0.90)
        assert is_triggered(position, ["0.75", "0.25"], 0.15) is True

    def test_no_side_uses_complement(self):
        """NO entered at 0.92; YES rising to 0.30 puts NO at 0.70 (drop 0.22)."""
        position = make_position(side=PositionSide.NO, entry_probability=0.92)
        assert is_triggered(position, ["0.30", "0.70"], 0.20) is True
        assert is_triggered(position, ["0.30", "0.70"], 0.25) is False

    def test_probability_rise_never_triggers(self):
        position = make_position(entry_probability=0.90)
        assert is_triggered(position, ["0.99", "0.01"], 0.03) is False


class TestBestBid:
    def test_aggregates_all_levels_at_best_price(self):
        assert best_bid(_book(("0.70", "2"), ("0.65", "10"), ("0.70", "2.5"))) == (0.70, 4.5)

    def test_empty_book(self):
        assert best_bid({"bids": []}) is None
        assert best_bid({}) is None

    def test_malformed_level_raises(self):
        with pytest.raises(MarketDataError):
            best_bid({"bids": [{"price": "abc", "size": "1"}]})


class TestApplyStopLoss:
    def test_partial_exit_example(self):
        """Size 10 / cost 9.0, best bid 0.70 x 4: sell 4, keep 6 open."""
        ledger = Ledger(0.0)
        position = make_position(ledger)

        row = apply_stop_loss(ledger, position, _book(("0.70", "4")), fee_rate=0.01, now=NOW)

        assert row is not None
        assert row.size == pytest.approx(4.0)
        assert row.payout == pytest.approx(2.8)
        assert row.cost == pytest.approx(3.6)
        assert row.pnl_no_fees == pytest.approx(-0.8)
        assert row.pnl_with_fees == pytest.approx(-0.8 - 0.028)
        assert row.resolution == Resolution.STOP_LOSS
        assert row.trade_date == "2025-01-14"

        assert position.size == pytest.approx(6.0)
        assert position.cost == pytest.approx(5.4)
        assert position.status == PositionStatus.PARTIALLY_EXITED
        assert ledger.balance == pytest.approx(2.8)
        assert ledger.realized_pnl_no_fees == pytest.approx(-0.8)

    def test_full_exit_closes_position(self):
        ledger = Ledger(0.0)
        position = make_position(ledger)

        row = apply_stop_loss(ledger, position, _book(("0.60", "25")), fee_rate=0.01, now=NOW)

        assert row.size == pytest.approx(10.0)
        assert row.cost == pytest.approx(9.0)
        assert position.size == 0.0
        assert position.cost == 0.0
        assert position.status == PositionStatus.CLOSED
        assert ledger.balance == pytest.approx(6.0)

    def test_repeated_partial_exits_draw_cost_proportionally(self):
        ledger = Ledger(0.0)
        position = make_position(ledger)
        sizes, costs = [position.size], [position.cost]

        for bid_size in ("4", "3", "1"):
            row = apply_stop_loss(ledger, position, _book(("0.70", bid_size)), fee_rate=0.0, now=NOW)
            assert row.cost == pytest.approx(row.size / sizes[-1] * costs[-1])
            sizes.append(position.size)
            costs.append(position.cost)

        assert sizes == pytest.approx([10.0, 6.0, 3.0, 2.0])
        assert costs == pytest.approx([9.0, 5.4, 2.7, 1.8])
        assert position.status == PositionStatus.PARTIALLY_EXITED

    def test_last_exit_overwrites_close_fields(self):
        ledger = Ledger(0.0)
        position = make_position(ledger)

        apply_stop_loss(ledger, position, _book(("0.70", "4")), fee_rate=0.0, now=NOW)
        later = datetime(2025, 1, 14, 13, 1, tzinfo=timezone.utc)
        apply_stop_loss(ledger, position, _book(("0.50", "1")), fee_rate=0.0, now=later)

        assert position.payout == pytest.approx(0.5)
        assert position.pnl_no_fees == pytest.approx(0.5 - 0.9)
        assert position.resolved_at == later
        assert ledger.realized_pnl_no_fees == pytest.approx(-0.8 + (0.5 - 0.9))

    def test_no_bids_leaves_position_untouched(self):
        ledger = Ledger(0.0)
        position = make_position(ledger)

        assert apply_stop_loss(ledger, position, _book(), fee_rate=0.01) is None
        assert position.size == 10.0
        assert position.cost == 9.0
        assert position.status == PositionStatus.OPEN
        assert position.resolution is None
        assert ledger.balance == 0.0

    def test_zero_size_at_best_bid_is_skipped(self):
        ledger = Ledger(0.0)
        position = make_position(ledger)

        assert apply_stop_loss(ledger, position, _book(("0.70", "0")), fee_rate=0.01) is None
        assert position.size == 10.0

    def test_closed_position_is_not_touched(self):
        ledger = Ledger(0.0)
        position = make_position(ledger, status=PositionStatus.CLOSED)

        assert apply_stop_loss(ledger, position, _book(("0.70", "4")), fee_rate=0.01) is None
        assert ledger.balance == 0.0
