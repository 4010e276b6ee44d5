# jinnie/core/logger.py
import logging
import sys
from typing import Optional

from jinnie.config import settings

_configured = False

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once. Safe to call from the app lifespan and from
    scripts; repeated calls are no-ops.
    """
    global _configured
    if _configured:
        return

    log_level = (level or settings.LOG_LEVEL or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level, logging.INFO))

    # uvicorn / pytest may have installed handlers already
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
