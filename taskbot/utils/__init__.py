"""Utilities package."""

from .logger import configure_logging, get_app_logger, init_app_logger
from .slack_text import strip_mentions, find_mentions

__all__ = [
    "get_app_logger",
    "configure_logging",
    "init_app_logger",
    "strip_mentions",
    "find_mentions",
]
