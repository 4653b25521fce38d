"""API package."""

from . import slack
from .v1 import conversations

__all__ = ["slack", "conversations"]
