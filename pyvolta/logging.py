"""Logging configuration for pyvolta.

Quiet by default (WARNING). Turn on iteration-level tracing with:

    from pyvolta.logging import enable_debug_logging
    enable_debug_logging()
"""

import logging
import sys

logger = logging.getLogger("pyvolta")
logger.setLevel(logging.WARNING)

if not logger.handlers:
    _default_handler = logging.StreamHandler(sys.stdout)
    _default_handler.setLevel(logging.DEBUG)
    _default_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(_default_handler)


def enable_debug_logging() -> None:
    """Log NR iterations and transient step retries."""
    logger.setLevel(logging.DEBUG)


def disable_debug_logging() -> None:
    """Back to WARNING-only output."""
    logger.setLevel(logging.WARNING)
