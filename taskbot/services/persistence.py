"""Conversation snapshot persistence.

The whole conversation collection is written as one JSON document:

    {
      "conversations": {"<thread_ts>": {...record...}},
      "last_saved": <epoch ms>
    }

Writes go to a sibling temp file first and are moved over the target with
os.replace, so a crash mid-write never leaves a truncated snapshot.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from ..models.conversation import ConversationRecord, to_epoch_ms, utc_now
from ..utils.logger import get_app_logger

Snapshot = Dict[str, Dict[str, Any]]


@dataclass
class LoadedState:
    """Result of loading the snapshot file."""

    conversations: Dict[str, ConversationRecord] = field(default_factory=dict)
    discarded: int = 0


class ConversationPersistence:
    """Debounced, atomic whole-collection snapshot store."""

    def __init__(
        self,
        state_file: Union[str, Path],
        debounce_seconds: float = 2.0,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize persistence.

        Args:
            state_file: Path of the snapshot file
            debounce_seconds: Delay after the last save request before writing
            clock: Source of the current time
        """
        self.state_file = Path(state_file)
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self.saves_completed = 0
        self.logger = get_app_logger("persistence")
        self._pending: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()

    @property
    def has_pending_save(self) -> bool:
        return self._pending is not None and not self._pending.done()

    async def load(self, retention: timedelta) -> LoadedState:
        """
        Load persisted conversations, dropping those past the retention window.

        A missing file is expected; a malformed file is reported and treated as empty.
        """
        try:
            async with aiofiles.open(self.state_file, mode='r', encoding='utf-8') as f:
                raw = await f.read()
        except FileNotFoundError:
            self.logger.info(f"No persisted state at {self.state_file}, starting fresh")
            return LoadedState()
        except (OSError, UnicodeDecodeError) as e:
            self.logger.error(f"Failed to read persisted state {self.state_file}: {e}")
            return LoadedState()

        try:
            data = json.loads(raw)
            entries = data["conversations"]
            if not isinstance(entries, dict):
                raise TypeError("'conversations' is not an object")
        except (ValueError, KeyError, TypeError) as e:
            self.logger.error(f"Malformed persisted state {self.state_file}, starting fresh: {e}")
            return LoadedState()

        cutoff = self.clock() - retention
        result = LoadedState()
        for thread_ts, entry in entries.items():
            try:
                record = ConversationRecord.model_validate(entry)
            except ValidationError as e:
                self.logger.warning(f"Skipping unreadable conversation {thread_ts}: {e.error_count()} errors")
                result.discarded += 1
                continue

            if record.last_activity < cutoff:
                result.discarded += 1
                continue
            result.conversations[thread_ts] = record

        self.logger.info(
            f"Loaded {len(result.conversations)} active conversations from disk "
            f"(discarded {result.discarded}, retention: {retention})"
        )
        return result

    def schedule_save(self, snapshot: Snapshot) -> None:
        """
        Request a debounced write of the given snapshot.

        A pending write that has not started yet is cancelled and replaced,
        so a burst of requests produces a single write once it settles.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("No running event loop; snapshot save skipped")
            return

        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

        self._pending = loop.create_task(self._debounced_write(snapshot))

    async def save_now(self, snapshot: Snapshot) -> bool:
        """Cancel any pending write and write the snapshot immediately."""
        await self._cancel_pending()
        saved = await self._write(snapshot)
        if saved:
            self.logger.info(f"Conversation state saved to {self.state_file}")
        return saved

    async def _cancel_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None or pending.done():
            return
        pending.cancel()
        try:
            await pending
        except asyncio.CancelledError:
            pass

    async def _debounced_write(self, snapshot: Snapshot) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # Past this point a newer request must not interrupt the write
        if self._pending is asyncio.current_task():
            self._pending = None
        await self._write(snapshot)

    async def _write(self, snapshot: Snapshot) -> bool:
        payload = {
            "conversations": snapshot,
            "last_saved": to_epoch_ms(self.clock()),
        }
        tmp_file = self.state_file.with_name(self.state_file.name + ".tmp")

        async with self._write_lock:
            try:
                await aiofiles.os.makedirs(self.state_file.parent, exist_ok=True)
                async with aiofiles.open(tmp_file, mode='w', encoding='utf-8') as f:
                    await f.write(json.dumps(payload, indent=2, ensure_ascii=False))
                await aiofiles.os.replace(tmp_file, self.state_file)
            except OSError as e:
                self.logger.error(f"Failed to save conversation state to {self.state_file}: {e}")
                await self._remove_quietly(tmp_file)
                return False

        self.saves_completed += 1
        return True

    async def _remove_quietly(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except OSError:
            pass
