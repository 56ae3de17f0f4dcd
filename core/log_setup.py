"""
core/log_setup.py
Root logger configuration shared by the command line and the API service.
"""

import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install a single stream handler on the root logger at `level`."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, "_paper_trader", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._paper_trader = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # httpx logs every request at INFO; keep the tick log readable
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
