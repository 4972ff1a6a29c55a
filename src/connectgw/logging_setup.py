"""Logging setup for the connector gateway.

Modules log through ``logging.getLogger(__name__)``; this only attaches a
handler to the package logger so CLI runs and host applications get
consistent output.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

PACKAGE_LOGGER = "connectgw"


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Calling it again replaces the previous handler instead of stacking them.

    Args:
        level: Log level name (defaults to config.log_level)

    Returns:
        The configured package logger
    """
    if level is None:
        from connectgw.config import config

        level = config.log_level

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())

    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    return logger
