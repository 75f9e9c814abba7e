"""
Logging for the cart core.

Usage:
    from cakecart.logging import get_logger
    logger = get_logger(__name__)

    logger.warning(f"Cart sync failed: {e}")

LOG_LEVEL sets the level (default INFO). LOG_FORMAT=simple drops the
timestamp for hosts that add their own.
"""

import logging
import os
import sys
from functools import cache
from typing import Optional

_FULL_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

# Line ids are "line_" + 32 hex chars; keep them whole
MAX_ID_LENGTH = 40

_CONTROL_CHARS = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def configure_logging(level: Optional[str] = None, simple: Optional[bool] = None) -> None:
    """Attach a stdout handler to the root logger unless one is already set up."""
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    if simple is None:
        simple = os.environ.get("LOG_FORMAT", "").lower() == "simple"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_SIMPLE_FORMAT if simple else _FULL_FORMAT))
    root.setLevel(log_level)
    root.addHandler(handler)

    # Upstash and Telegram requests go through httpx
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _clip(value: str, max_length: int) -> str:
    if len(value) <= max_length:
        return value
    return value[:max_length] + "..."


def sanitize_id_for_logging(id_value, max_length: int = MAX_ID_LENGTH) -> str:
    """
    Make a caller-supplied line or product id safe to log.

    Control characters are escaped so an id cannot forge log lines
    (CWE-117). Ids longer than max_length are clipped; generated line
    ids fit whole, so NOT_FOUND logs name the exact line.
    """
    if id_value is None or id_value == "":
        return "N/A"
    return _clip(str(id_value).translate(_CONTROL_CHARS), max_length)


def sanitize_string_for_logging(value: Optional[str], max_length: int = 50) -> str:
    """Escape and clip free text (product names, messages) for logging."""
    if not value:
        return "N/A"
    return _clip(str(value).translate(_CONTROL_CHARS), max_length)


__all__ = [
    "configure_logging",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
