"""
Logging setup for ShardGrid.
"""

import logging

from .config import Settings

LOG_FORMATS = {
    "text": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "json": '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
}

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


def configure_logging(settings: Settings):
    """Configure root logging from the log level and format in settings."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMATS[settings.log_format])

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
