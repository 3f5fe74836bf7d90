"""
Miscellaneous helpers shared by the LockMint lib and server packages.
"""

import logging
import math
from typing import Any, Optional


def make_logger(name: str, *, handler=None, level=None) -> logging.Logger:
    """Return a logger, optionally attaching a handler and level."""
    logger = logging.getLogger(name)
    if handler is not None:
        logger.addHandler(handler)
    if level is not None:
        logger.setLevel(level)
    return logger


def class_logger(path: str, classname: str) -> logging.Logger:
    """Return a hierarchical logger for a class."""
    return logging.getLogger(path).getChild(classname)


def is_number(value: Any) -> bool:
    """True for finite ints and floats.  Booleans are not numbers here."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return math.isfinite(value)
    return False


def to_int(value: Any) -> Optional[int]:
    """
    Coerce a JSON scalar to an int.

    Accepts integers, integral floats, and decimal strings (inscription
    JSON frequently encodes numbers as strings).  Returns None otherwise.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value == int(value):
            return int(value)
        return None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def short_hash(txid: Optional[str], length: int = 16) -> str:
    """Abbreviate a txid for log lines."""
    if not txid:
        return '<none>'
    if len(txid) <= length:
        return txid
    return f'{txid[:length]}...'
