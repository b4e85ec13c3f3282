# breaker_panel/core/logging_config.py
from __future__ import annotations
import logging

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once; later calls only adjust the level."""
    global _configured
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    if not _configured:
        logging.basicConfig(level=numeric, format=LOG_FORMAT)
        # uvicorn installs its own handlers; keep its access log at our level
        logging.getLogger("uvicorn.access").setLevel(numeric)
        _configured = True
    else:
        logging.getLogger().setLevel(numeric)
