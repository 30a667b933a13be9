### Description ###
# PetShop Sync - Storage core for the PetShop POS app
# - Logging Setup -
# Date: 10/19/2026
# Python: 3.11
####################

"""
Logging Setup

Service modules log through logging.getLogger(__name__). configure_logging
attaches handlers to the "petshop" package logger from the
application.logging section of config.yaml:

- Console and/or a log file that rotates at midnight, keeping
  retention_days old files (petshop.log.2026-10-18, ...)
- Calling it again re-levels the existing handlers instead of stacking
  new ones
- Access tokens are masked, so a log file can be attached to a bug report
"""

# Standard Imports
import logging
import re
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from petshop.config_schema import LoggingConfig

PACKAGE_LOGGER = "petshop"
LOG_FILE_NAME = "petshop.log"

_TOKEN_PATTERNS = [
    # GitHub personal access tokens, classic and fine-grained
    (re.compile(r"\b(gh[pousr]_|github_pat_)[A-Za-z0-9_]+"), r"\1***"),
    (re.compile(r"(Bearer\s+)\S+"), r"\1***"),
]


def mask_tokens(text: str) -> str:
    """Replace the secret part of any access token in text"""
    for pattern, replacement in _TOKEN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class CustomFormatter(logging.Formatter):
    """
    Format records as "HH:MM:SS AM/PM - module - LEVEL: message".

    The "petshop." prefix is dropped from logger names.
    """

    def format(self, record):
        timestamp = datetime.fromtimestamp(record.created).strftime("%I:%M:%S %p")
        name = record.name.removeprefix(f"{PACKAGE_LOGGER}.")

        formatted_msg = f"{timestamp} - {name} - {record.levelname}: {record.getMessage()}"
        if record.exc_info:
            formatted_msg += "\n" + self.formatException(record.exc_info)

        return mask_tokens(formatted_msg)


def configure_logging(
    config: LoggingConfig,
    log_dir: str | Path = "logs",
    debug: bool = False,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        config: application.logging section of config.yaml
        log_dir: Directory for the rotating log file
        debug: Force DEBUG level (--debug on the command line)

    Returns:
        The "petshop" logger

    Example:
        configure_logging(LoggingConfig(level="DEBUG", log_to_file=False))
    """
    level = logging.DEBUG if debug else getattr(logging, config.level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    formatter = CustomFormatter()
    handlers: list[logging.Handler] = []

    if config.log_to_file:
        logs_dir = Path(log_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            logs_dir / LOG_FILE_NAME,
            when="midnight",
            backupCount=config.retention_days,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        handlers.append(file_handler)

    if config.log_to_console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
