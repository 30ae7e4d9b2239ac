"""
Logging setup for threadmind processes.

Modules log through ``logging.getLogger("threadmind.<area>.<module>")``;
entry points call ``setup_logging`` once at startup.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at DEBUG
_QUIET_LOGGERS = ("asyncpg", "httpx", "httpcore", "slack_sdk", "urllib3")


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``threadmind`` logger hierarchy.

    Args:
        level: Level name (DEBUG, INFO, ...). Unknown names fall back to INFO.

    Returns:
        The root ``threadmind`` logger
    """
    resolved = logging.getLevelName((level or "INFO").upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root = logging.getLogger("threadmind")
    root.setLevel(resolved)

    if not any(getattr(h, "_threadmind", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._threadmind = True
        root.addHandler(handler)
    root.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    return root
