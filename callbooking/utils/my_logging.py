# callbooking/utils/my_logging.py
"""Logging configuration"""
import logging
import sys
from callbooking.config.settings import get_settings

# Library loggers the engine actually drives: SQL echo and pool checkouts,
# migration runs, and the broker connection used when publishing events
QUIET_LOGGERS = (
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "alembic",
    "kombu",
)


def setup_logging(verbose=True):
    """Configure logging for the engine; quiet mode keeps library chatter out"""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO) if verbose else logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logging.getLogger("callbooking").setLevel(level)

    if verbose:
        return

    for name in QUIET_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.ERROR)
        logger.propagate = False
