import logging
import sys

from contractflow.core.config import settings


def configure_logging(level: int | str = None) -> None:
    """Idempotent logging configuration for the app."""
    logging.basicConfig(
        level=level or settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
