"""Slack event routing with per-thread serialization."""

import asyncio
import functools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from pydantic import ValidationError

from ..models.integrations import SlackMessageEvent
from ..utils.logger import get_app_logger
from .mention import MentionHandler
from .thread import ThreadHandler


class SlackEventDispatcher:
    """
    Routes Slack events to the mention and thread handlers.

    Events for the same thread are handled one at a time, in arrival order;
    different threads proceed concurrently. Handler failures are logged and
    never propagate to the HTTP layer.
    """

    def __init__(self, mention_handler: MentionHandler, thread_handler: ThreadHandler, bot_user_id: str = ""):
        self.mention_handler = mention_handler
        self.thread_handler = thread_handler
        self.bot_user_id = bot_user_id
        self.logger = get_app_logger()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def _thread_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                del self._locks[key]

    async def dispatch(self, raw_event: Dict[str, Any]) -> None:
        """Handle one ``event`` object from an Events API callback."""
        try:
            event = SlackMessageEvent.model_validate(raw_event)
        except ValidationError as e:
            self.logger.warning(f"Ignoring malformed Slack event: {e.error_count()} errors")
            return

        if event.type == "app_mention":
            if event.thread_ts:
                # Also delivered as a `message` event, handled there
                return
            handler = functools.partial(self.mention_handler.handle, event)
        elif event.type == "message":
            if not event.thread_ts:
                return
            handler = functools.partial(self.thread_handler.handle, event, self.bot_user_id)
        else:
            self.logger.debug(f"Ignoring Slack event type {event.type}")
            return

        key = event.thread_ts or event.ts
        async with self._thread_lock(key):
            try:
                await handler()
            except Exception as e:
                self.logger.exception(f"Error handling {event.type} event in thread {key}: {e}")
