"""Logging configuration for modelhub."""

import logging
import sys
from logging.handlers import RotatingFileHandler

from modelhub.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "huggingface_hub")


def setup_logging(
    level: int | str | None = None, log_file: str | None = None
) -> logging.Logger:
    """
    Configure and return the registry logger.

    ``level`` defaults to ``MODELHUB_LOG_LEVEL`` (INFO). When ``log_file`` or
    ``MODELHUB_LOG_FILE`` is set, records are also written to a rotating file.
    """
    if level is None:
        level = settings.log_level.upper()
    if log_file is None:
        log_file = settings.log_file or None

    logger = logging.getLogger("modelhub")
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        logger.addHandler(console)

        if log_file:
            file_handler = RotatingFileHandler(
                log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


logger = setup_logging()
