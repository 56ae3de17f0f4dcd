"""
app/run.py
Command line for headless runs.

    python -m app.run scan      [--env-file profiles/config1.env]
    python -m app.run trade     [--env-file ...]
    python -m app.run pipeline  [--env-file ...]

`scan` writes the scanner output file, `trade` allocates against it and
polls until every position has closed, `pipeline` does both in one
process. The status/snapshot HTTP surface is served by `uvicorn app.main:app`.
"""

import argparse
import asyncio
import logging
import sys

from app.services.paper_trader import PaperTrader
from app.services.polymarket_client import PolymarketClient
from app.services.scanner_service import load_opportunities, run_scan, save_scan
from core.config import Settings
from core.log_setup import configure_logging
from database.models import Opportunity

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="paper-trader",
        description="Paper-trade short-dated prediction markets with stop-losses.",
    )
    parser.add_argument(
        "command",
        choices=("scan", "trade", "pipeline"),
        help="scan: find opportunities; trade: allocate and monitor; pipeline: both",
    )
    parser.add_argument("--env-file", default=".env", help="run profile (.env file)")
    return parser


async def _scan(settings: Settings, client: PolymarketClient) -> list[Opportunity]:
    result = await run_scan(client, settings)
    save_scan(result, settings.scanner_output_path)
    return result.opportunities


async def _trade(settings: Settings, client: PolymarketClient, opportunities: list[Opportunity]) -> None:
    trader = await PaperTrader.create(settings, gateway=client)
    try:
        if not trader.seed(opportunities):
            logger.info("No positions opened. Exiting.")
            return
        await trader.run()
        await trader.export_snapshot()
    finally:
        await trader.close()


async def _main(command: str, settings: Settings) -> None:
    client = PolymarketClient(settings)
    try:
        if command == "scan":
            await _scan(settings, client)
            return
        if command == "pipeline":
            opportunities = await _scan(settings, client)
        else:
            opportunities = load_opportunities(settings.scanner_output_path)
        await _trade(settings, client, opportunities)
    finally:
        await client.close()


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = Settings(_env_file=args.env_file)
    configure_logging(settings.LOG_LEVEL)
    logger.info("Profile %s: budget $%.2f, stop drop %.2f", settings.BOT_NAME, settings.TOTAL_BUDGET, settings.STOP_PROB_DROP)

    try:
        asyncio.run(_main(args.command, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
