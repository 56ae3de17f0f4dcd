"""
app/services/paper_trader.py
One paper-trading run: owns the ledger, the market data client, the
ledger sink and the position monitor, and exposes the read-only views
(status, snapshot) used by the API and the command line.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncEngine

from app.services.allocator import allocate
from app.services.ledger import Ledger, Position
from app.services.ledger_sink import CsvLedgerSink, LedgerSink, SqlLedgerSink
from app.services.polymarket_client import PolymarketClient
from app.services.position_monitor import MarketDataGateway, MonitorState, PositionMonitor
from core.config import Settings
from database.models import Opportunity

logger = logging.getLogger(__name__)


async def create_sink(settings: Settings) -> tuple[LedgerSink, AsyncEngine | None]:
    """Build the configured ledger sink. Returns the DB engine too when one was created."""
    if settings.LEDGER_SINK == "sqlite":
        from database.connection import create_engine_for, init_db, session_factory

        engine = create_engine_for(settings.DATABASE_URL)
        await init_db(engine)
        logger.info("Ledger sink: sqlite (%s)", settings.DATABASE_URL)
        return SqlLedgerSink(session_factory(engine), settings.BOT_NAME), engine

    if settings.LEDGER_SINK != "csv":
        logger.warning("Unknown LEDGER_SINK %r, falling back to csv", settings.LEDGER_SINK)
    logger.info("Ledger sink: csv (%s)", settings.ledger_csv_path)
    return CsvLedgerSink(settings.ledger_csv_path, settings.snapshot_csv_path), None


class PaperTrader:
    """Wires allocator, ledger, monitor and sink for one run."""

    def __init__(
        self,
        settings: Settings,
        sink: LedgerSink,
        gateway: MarketDataGateway | None = None,
        engine: AsyncEngine | None = None,
    ) -> None:
        self.settings = settings
        self.sink = sink
        self._owns_gateway = gateway is None
        self.gateway = gateway or PolymarketClient(settings)
        self._engine = engine
        self.ledger = Ledger(settings.TOTAL_BUDGET)
        self.monitor = PositionMonitor(
            self.ledger,
            self.gateway,
            sink,
            stop_threshold=settings.STOP_PROB_DROP,
            fee_rate=settings.FEE_RATE,
            interval_seconds=settings.POLL_INTERVAL_SECONDS,
        )

    @classmethod
    async def create(cls, settings: Settings, gateway: MarketDataGateway | None = None) -> "PaperTrader":
        sink, engine = await create_sink(settings)
        return cls(settings, sink, gateway=gateway, engine=engine)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def seed(self, opportunities: list[Opportunity]) -> list[Position]:
        """Open the initial positions. Called once, before monitoring starts."""
        return allocate(opportunities, self.settings.TOTAL_BUDGET, self.ledger)

    async def run(self) -> None:
        """Monitor positions until all are closed (or `close()` is called)."""
        await self.monitor.run()

    @property
    def done(self) -> bool:
        return self.monitor.state == MonitorState.DONE

    async def close(self) -> None:
        self.monitor.stop()
        if self._owns_gateway and isinstance(self.gateway, PolymarketClient):
            await self.gateway.close()
        if self._engine is not None:
            await self._engine.dispose()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    def status(self) -> dict:
        return {**self.ledger.status(), "state": self.monitor.state.value}

    async def export_snapshot(self) -> dict:
        """Write the snapshot of closed positions; returns count and realized P&L."""
        async with self.ledger.lock:
            closed = list(self.ledger.closed_positions())
            realized = sum(p.pnl_with_fees or 0.0 for p in closed)
            exported = await self.sink.export_snapshot(closed)

        logger.info("Snapshot exported (%d trades) | Realized P&L: $%.2f", exported, realized)
        return {"exported": exported, "realized_pnl": round(realized, 2)}
