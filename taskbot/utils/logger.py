"""Logging for the taskbot package.

Everything logs under the ``taskbot`` logger or one of its children, so the
console and file handlers are attached once, on the package logger.
"""

import logging
import os
from typing import Optional

APP_LOGGER_NAME = "taskbot"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Request-level chatter from the HTTP clients, shown only when debugging
NOISY_LOGGERS = ("httpx", "httpcore")

app_logger: Optional[logging.Logger] = None


def _parse_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach console and optional file output to the package logger.

    Calling it again only changes the level; handlers are attached once.
    """
    logger = logging.getLogger(APP_LOGGER_NAME)
    level = _parse_level(log_level)
    logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def init_app_logger(settings) -> logging.Logger:
    """Configure the package logger from the application settings."""
    global app_logger

    app_logger = configure_logging(settings.log_level, settings.log_file or None)
    return app_logger


def get_app_logger(component: Optional[str] = None) -> logging.Logger:
    """
    The package logger, or a ``taskbot.<component>`` child of it.

    Before init_app_logger runs the package logger gets console output at INFO.
    """
    if app_logger is None and not logging.getLogger(APP_LOGGER_NAME).handlers:
        configure_logging()

    if component:
        return logging.getLogger(f"{APP_LOGGER_NAME}.{component}")
    return logging.getLogger(APP_LOGGER_NAME)
