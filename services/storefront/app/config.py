from __future__ import annotations

import logging
import os

LOGGER_NAME = "storefront"


def configure_logging() -> logging.Logger:
    """Attach a stream handler to the service logger once.

    Level comes from STOREFRONT_LOG_LEVEL (default INFO).
    """

    logger = logging.getLogger(LOGGER_NAME)
    level_name = os.getenv("STOREFRONT_LOG_LEVEL", "INFO").strip().upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(handler)

    return logger
