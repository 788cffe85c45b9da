"""
Logging configuration.

Every module logs through ``logging.getLogger(__name__)``.
This module configures the root logger once, at startup,
with the level taken from the LOG_LEVEL setting.
"""

import logging
import sys

from purchase_ledger.config import get_settings

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level() -> int:
    """Resolve the configured level name, defaulting to INFO."""
    return LOG_LEVEL_MAP.get(get_settings().LOG_LEVEL, logging.INFO)


def setup_logging() -> None:
    """
    Configure the root logger to write to stdout.

    Existing handlers are removed first so that calling this
    twice (e.g. under a reloader) does not duplicate output.
    """
    formatter = logging.Formatter(
        fmt="[%(asctime)s] %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    log_level = get_log_level()

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # SQL echo is controlled by DEBUG, not by the app log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
