"""
Logging setup for the voice controller.
"""

import logging
from typing import Optional

from vocational_voice.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a console handler on the package logger.

    Args:
        level: Logging level name; defaults to settings.log_level
    """
    level_name = (level or settings.log_level).upper()

    package_logger = logging.getLogger("vocational_voice")
    package_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    package_logger.addHandler(handler)
    package_logger.setLevel(level_name)
    package_logger.propagate = False

    package_logger.debug(f"Logging configured at {level_name}")
