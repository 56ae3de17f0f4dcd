"""
app/services/position_monitor.py
Polls every open position on a fixed interval: stop-loss first, then
resolution, until every position is closed.

Each tick has three phases:
  1. fetch market state for all open positions concurrently
  2. fetch order books concurrently for positions whose stop-loss fired
  3. apply exits and settlements one position at a time under the ledger lock

A fetch failure or malformed payload only skips that position for the
tick. Once every position is closed the monitor moves to DONE, dumps the
recorded trade rows to the log and never ticks again.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from app.services.ledger import Ledger, Position
from app.services.ledger_sink import LedgerSink, TradeRow
from app.services.polymarket_client import MarketDataError, parse_outcome_prices
from app.services.resolution_service import settle_position
from app.services.stop_loss import apply_stop_loss, is_triggered
from core.constants import CSV_DUMP_END, CSV_DUMP_START

logger = logging.getLogger(__name__)


class MarketDataGateway(Protocol):
    async def get_market_by_id(self, market_id: str) -> dict: ...

    async def get_orderbook(self, token_id: str) -> dict: ...


class MonitorState(str, Enum):
    RUNNING = "RUNNING"
    DONE = "DONE"


@dataclass
class TickResult:
    """Counts for one sweep over the open positions."""
    checked: int = 0
    stop_exits: int = 0
    settlements: int = 0
    skipped: int = 0
    sink_failures: int = 0


class PositionMonitor:
    """Drives stop-loss and resolution checks for one ledger."""

    def __init__(
        self,
        ledger: Ledger,
        gateway: MarketDataGateway,
        sink: LedgerSink,
        *,
        stop_threshold: float,
        fee_rate: float,
        interval_seconds: float,
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.sink = sink
        self.stop_threshold = stop_threshold
        self.fee_rate = fee_rate
        self.interval_seconds = interval_seconds
        self.state = MonitorState.RUNNING
        self.ticks = 0
        self._stop = asyncio.Event()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Tick every `interval_seconds` until DONE or `stop()` is called."""
        if await self._check_done():
            return

        logger.info(
            "Watching %d open positions (every %ss)",
            len(self.ledger.open_positions()), self.interval_seconds,
        )
        while self.state == MonitorState.RUNNING:
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
                logger.info("Position monitor stopped before completion")
                return
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_tick()
            except Exception as exc:
                logger.error("Position monitor tick %d failed: %s", self.ticks, exc)

    def stop(self) -> None:
        self._stop.set()

    # ------------------------------------------------------------------
    # One sweep
    # ------------------------------------------------------------------

    async def run_tick(self) -> TickResult:
        """Evaluate every open position once; returns what happened."""
        result = TickResult()
        if self.state == MonitorState.DONE:
            return result

        self.ticks += 1
        positions = self.ledger.open_positions()
        result.checked = len(positions)

        markets = await asyncio.gather(
            *(self.gateway.get_market_by_id(p.market_id) for p in positions),
            return_exceptions=True,
        )

        triggered: dict[int, Position] = {}
        for position, market in zip(positions, markets):
            if isinstance(market, BaseException):
                continue
            try:
                if is_triggered(position, parse_outcome_prices(market), self.stop_threshold):
                    triggered[position.id] = position
            except Exception:
                # reported in the mutation phase
                continue

        books = await asyncio.gather(
            *(self.gateway.get_orderbook(p.token_id) for p in triggered.values()),
            return_exceptions=True,
        )
        books_by_id = dict(zip(triggered.keys(), books))

        rows: list[TradeRow] = []
        async with self.ledger.lock:
            for position, market in zip(positions, markets):
                if isinstance(market, BaseException):
                    logger.warning(
                        "Market fetch failed for %s (%s): %s; retrying next tick",
                        position.slug, position.market_id, market,
                    )
                    result.skipped += 1
                    continue
                try:
                    self._evaluate(position, market, books_by_id, result, rows)
                except MarketDataError as exc:
                    logger.warning("Skipping %s this tick: %s", position.slug, exc)
                    result.skipped += 1
                except Exception as exc:
                    logger.warning(
                        "Skipping %s this tick: unexpected %s: %s",
                        position.slug, type(exc).__name__, exc,
                    )
                    result.skipped += 1

        for row in rows:
            try:
                await self.sink.append_row(row)
            except Exception as exc:
                # ledger state is kept; only this row is lost
                logger.error(
                    "Ledger sink append failed for %s %s: %s",
                    row.slug, row.resolution.value, exc,
                )
                result.sink_failures += 1

        logger.debug(
            "Tick %d: checked=%d stop_exits=%d settlements=%d skipped=%d sink_failures=%d",
            self.ticks, result.checked, result.stop_exits, result.settlements,
            result.skipped, result.sink_failures,
        )
        await self._check_done()
        return result

    def _evaluate(
        self,
        position: Position,
        market: dict,
        books_by_id: dict[int, object],
        result: TickResult,
        rows: list[TradeRow],
    ) -> None:
        """
        Stop-loss then resolution for one position. Caller holds the ledger lock.

        Rows are appended to `rows` as each exit is applied, so a stop exit
        is kept even if the settlement check after it raises.
        """
        if position.id in books_by_id:
            book = books_by_id[position.id]
            if isinstance(book, BaseException):
                logger.warning(
                    "Order book fetch failed for %s: %s; stop-loss retried next tick",
                    position.slug, book,
                )
            else:
                row = apply_stop_loss(self.ledger, position, book, self.fee_rate)
                if row is not None:
                    rows.append(row)
                    result.stop_exits += 1

        if not position.is_closed:
            row = settle_position(self.ledger, position, market, self.fee_rate)
            if row is not None:
                rows.append(row)
                result.settlements += 1

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def _check_done(self) -> bool:
        if self.state == MonitorState.DONE:
            return True
        if not self.ledger.all_closed:
            return False

        self.state = MonitorState.DONE
        status = self.ledger.status()
        logger.info(
            "All positions closed after %d ticks. Paper trading complete: balance $%.2f, realized P&L $%.2f",
            self.ticks, status["balance"], status["realized_pnl_with_fees"],
        )
        dump = await self.sink.dump()
        logger.info("\n%s\n%s%s\n", CSV_DUMP_START, dump, CSV_DUMP_END)
        return True
