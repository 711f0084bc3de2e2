"""Logging configuration for the Hermes team assistant."""

import logging
import sys
from datetime import datetime

from config import LOG_DIR, LOG_LEVEL

APP_LOGGER = "hermes"


def setup_logging() -> logging.Logger:
    """Set up logging to both file and console."""
    logger = logging.getLogger(APP_LOGGER)
    logger.setLevel(LOG_LEVEL)

    # Clear any existing handlers
    logger.handlers.clear()

    # File handler - one file per day, shared by every module logger
    log_file = LOG_DIR / f"{APP_LOGGER}-{datetime.now().strftime('%Y-%m-%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(LOG_LEVEL)
    file_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    file_handler.setFormatter(file_formatter)
    logger.addHandler(file_handler)

    # Console handler (only if attached to a terminal)
    if sys.stdout is not None and sys.stdout.isatty():
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(LOG_LEVEL)
        console_formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S"
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    return logger


def get_logger(module_name: str) -> logging.Logger:
    """Child of the app logger for one module, e.g. 'hermes.reminders.scheduler'.

    Children have no handlers of their own and propagate to the app logger.
    """
    short = module_name.removeprefix("domains.")
    return logging.getLogger(f"{APP_LOGGER}.{short}")


# Global logger instance
logger = setup_logging()
