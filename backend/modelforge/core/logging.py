"""
Logging setup for the API process
"""

import logging
import sys
from typing import Optional

from modelforge.core.config import settings

NOISY_LOGGERS = ("aiohttp.access", "httpx", "httpcore", "openai")

_handler: Optional[logging.Handler] = None


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _handler

    root = logging.getLogger()
    log_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)

    if _handler is None:
        _handler = logging.StreamHandler(sys.stdout)
        _handler.setFormatter(logging.Formatter(fmt or settings.LOG_FORMAT))
        root.addHandler(_handler)

    root.setLevel(log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
