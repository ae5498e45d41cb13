"""Opt-in debug trace for the terminal viewer.

The full-screen display owns stdout, so regular log records are held back
until it exits.  ``dbg`` lines bypass that and go straight to stderr,
which makes ``SGRAM_DEBUG=1 sgram mic 2> trace.txt`` usable while the
viewer runs.  Nothing is printed unless ``SGRAM_DEBUG`` is ``1`` or
``true``.
"""

from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache

TRACE_FORMAT = "[%(asctime)s.%(msecs)03d %(module)s.%(funcName)s] %(message)s"


@lru_cache(maxsize=None)
def _trace_logger() -> logging.Logger | None:
    if os.environ.get("SGRAM_DEBUG", "").strip().lower() not in ("1", "true"):
        return None
    logger = logging.getLogger("sgram.trace")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(TRACE_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    return logger


def dbg(msg: str, *args) -> None:
    """Trace *msg* tagged with the calling function, if enabled."""
    logger = _trace_logger()
    if logger is not None:
        logger.debug(msg, *args, stacklevel=2)
