"""
Shared helpers: logging setup and small value converters.
"""
import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from carehub.core import config

_configured = False


def get_logger(name: str) -> logging.Logger:
    """
    Return a module logger, configuring the root handler on first use.

    Usage:
        log = get_logger(__name__)
        log.info("Starting up")
    """
    global _configured
    if not _configured:
        logging.basicConfig(
            level=config.LOG_LEVEL,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
        _configured = True
    return logging.getLogger(name)


def now() -> datetime:
    """Naive local timestamp, matching how DATETIME columns are stored."""
    return datetime.now()


def round_money(value: Decimal | float | int) -> float:
    """Round a monetary amount to cents and return it as a float for JSON."""
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    return float(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
