"""
app/main.py
FastAPI entry point: runs one paper-trading session in the background and
serves its status and snapshot endpoints.

Run:  uvicorn app.main:app
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.routes.positions import router as positions_router
from app.routes.status import router as status_router
from app.services.paper_trader import PaperTrader
from app.services.polymarket_client import PolymarketClient
from app.services.scanner_service import load_opportunities, run_scan, save_scan
from core.config import Settings, get_settings
from core.constants import SYSTEM_VERSION
from core.log_setup import configure_logging
from database.models import Opportunity

logger = logging.getLogger(__name__)


async def collect_opportunities(settings: Settings, client: PolymarketClient) -> list[Opportunity]:
    """Live scan when SCAN_ON_STARTUP is set, otherwise read the scanner output file."""
    if settings.SCAN_ON_STARTUP:
        result = await run_scan(client, settings)
        save_scan(result, settings.scanner_output_path)
        return result.opportunities
    return load_opportunities(settings.scanner_output_path)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: seed positions and start monitoring. Shutdown: stop everything."""
    from app.services.scheduler import start_scheduler, stop_scheduler

    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    client = PolymarketClient(settings)
    trader: PaperTrader | None = None
    monitor_task: asyncio.Task | None = None
    try:
        trader = await PaperTrader.create(settings, gateway=client)
        app.state.trader = trader

        opportunities = await collect_opportunities(settings, client)
        trader.seed(opportunities)

        monitor_task = asyncio.create_task(trader.run(), name="position-monitor")
        start_scheduler(trader)
        yield
    finally:
        stop_scheduler()
        if monitor_task is not None:
            monitor_task.cancel()
            with suppress(asyncio.CancelledError):
                await monitor_task
        if trader is not None:
            await trader.close()
        app.state.trader = None
        await client.close()


app = FastAPI(
    title="Prediction Market Paper Trader",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(status_router)
app.include_router(positions_router)


@app.get("/health")
async def health_check(request: Request) -> dict:
    """Prove the API is alive and a trading run is attached."""
    trader: PaperTrader | None = getattr(request.app.state, "trader", None)
    now = datetime.now(timezone.utc).isoformat()
    if trader is None:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "trader": "not attached", "timestamp": now},
        )
    return {
        "status": "healthy",
        "state": trader.monitor.state.value,
        "version": SYSTEM_VERSION,
        "timestamp": now,
    }
