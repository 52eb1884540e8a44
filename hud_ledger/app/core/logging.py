"""
Logging configuration.

Sets up the `hud_ledger` logger hierarchy once at application start.
"""

import logging
from hud_ledger.app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = None) -> logging.Logger:
    """
    Configure the root service logger.

    Safe to call more than once; the handler is only attached the first time.
    """
    logger = logging.getLogger("hud_ledger")
    logger.setLevel((level or settings.log_level).upper())

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
