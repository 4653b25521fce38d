"""Slack event handlers."""

from .mention import MentionHandler
from .thread import ThreadHandler
from .dispatcher import SlackEventDispatcher

__all__ = [
    "MentionHandler",
    "ThreadHandler",
    "SlackEventDispatcher",
]
