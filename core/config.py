"""
core/config.py
Environment-based configuration using pydantic-settings.
Loads from .env file automatically; one .env file per run profile
(pass another one with `--env-file` on the command line).
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # --- Profile ---
    BOT_NAME: str = "config1"

    # --- Trader ---
    TOTAL_BUDGET: float = Field(default=50.0, ge=0)
    STOP_PROB_DROP: float = Field(default=0.15, gt=0, le=1)
    FEE_RATE: float = Field(default=0.01, ge=0, lt=1)
    POLL_INTERVAL_SECONDS: float = Field(default=60, gt=0)

    # --- Scanner ---
    MAX_HOURS_TO_CLOSE: float = 2.0
    MIN_PROBABILITY: float = 0.85
    MAX_PROBABILITY: float = 0.96
    MIN_LIQUIDITY_USD: float = 10.0
    DISCOVERY_PAGE_LIMIT: int = 100
    SCAN_ON_STARTUP: bool = False

    # --- Output ---
    LEDGER_SINK: str = "csv"  # "csv" | "sqlite"
    LEDGER_CSV_PATH: str = ""
    SNAPSHOT_CSV_PATH: str = ""
    SCANNER_OUTPUT_PATH: str = ""
    SNAPSHOT_INTERVAL_MINUTES: int = 0

    # --- Database (sqlite ledger sink) ---
    DATABASE_URL: str = "sqlite+aiosqlite:///./paper_trader.db"

    # --- HTTP ---
    HTTP_TIMEOUT_SECONDS: float = 15.0

    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }

    @property
    def ledger_csv_path(self) -> str:
        return self.LEDGER_CSV_PATH or f"paper-{self.BOT_NAME}.csv"

    @property
    def snapshot_csv_path(self) -> str:
        return self.SNAPSHOT_CSV_PATH or f"paper-trades-snapshot-{self.BOT_NAME}.csv"

    @property
    def scanner_output_path(self) -> str:
        return self.SCANNER_OUTPUT_PATH or f"scanner-output-{self.BOT_NAME}.json"


@lru_cache
def get_settings() -> Settings:
    """Singleton access to application settings."""
    return Settings()
