"""
Logging setup for the LAN scanner service.

Modules obtain their logger with ``logging.getLogger(__name__)``; this module
only configures the root handler once at startup.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_initialized = False


def setup_logging(level: Optional[str] = None, debug: bool = False) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name (e.g. "INFO"); falls back to INFO when unknown
        debug: Force DEBUG level regardless of ``level``
    """
    global _initialized

    resolved = logging.DEBUG if debug else getattr(logging, (level or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(resolved)

    if not _initialized:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        # zeroconf and aiohttp are chatty at DEBUG
        logging.getLogger("zeroconf").setLevel(max(resolved, logging.INFO))
        logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
        _initialized = True
