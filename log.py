"""
Logging setup for the storefront API.

Usage:
    from log import get_logger
    logger = get_logger(__name__)
"""

import logging
import os
import sys
from functools import lru_cache

from bson import ObjectId

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _get_log_level() -> int:
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def _configure_root_logger() -> None:
    root = logging.getLogger()
    # Leave existing configuration alone (uvicorn, pytest caplog)
    if root.handlers:
        return

    root.setLevel(_get_log_level())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    logging.getLogger("pymongo").setLevel(logging.WARNING)


_configure_root_logger()


@lru_cache(maxsize=None)
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(value) -> str:
    """
    Make an id safe to log.

    ObjectIds are logged whole: their first bytes are only a timestamp, so
    a prefix cannot tell two documents apart. Anything else is client
    supplied, so control characters are escaped (log injection) and the
    value is cut to its first 8 characters.
    """
    if value is None or value == "":
        return "N/A"
    if isinstance(value, ObjectId):
        return str(value)
    safe = (
        str(value)
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )
    return safe[:8]
