import logging
import sys
from typing import Optional

from loguru import logger

from dental_billing.core.config import settings


def configure_logging(level: Optional[str] = None) -> None:
    """Route stdlib and loguru output to stderr at the configured level."""
    level = (level or settings.LOG_LEVEL).upper()

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )
    # SQL echo is handled by the engine when DEBUG is on
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger.remove()
    logger.add(sys.stderr, level=level)
