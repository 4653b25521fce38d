"""Rebuild conversation history from a Slack thread transcript.

Used when a thread reply arrives for a thread the store knows nothing about,
e.g. after a deploy without the snapshot volume or once the snapshot expired.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from ..clients.base import ChatClient, ChatClientError
from ..models.conversation import ConversationMessage, MessageRole, utc_now
from ..models.integrations import TranscriptMessage
from ..utils.logger import get_app_logger
from ..utils.slack_text import strip_mentions


class RecoveredConversation(BaseModel):
    """Best-effort reconstruction of a thread conversation."""

    history: List[ConversationMessage] = Field(default_factory=list, description="Recovered turns")
    original_request: str = Field(default="", description="Thread opening request, mentions stripped")
    requested_by: Optional[str] = Field(default=None, description="Author of the opening request")
    message_count: int = Field(default=0, description="Transcript messages processed")
    assistant_turns: int = Field(default=0, description="Turns authored by the bot")


def thread_started_at(thread_ts: str) -> Optional[datetime]:
    """Parse a Slack thread timestamp ("seconds.micros") into a UTC datetime."""
    try:
        return datetime.fromtimestamp(float(thread_ts), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class HistoryRecoveryService:
    """Transcript-based recovery of lost conversations."""

    def __init__(
        self,
        chat_client: ChatClient,
        retention_hours: int,
        enabled: bool = True,
        max_messages: int = 100,
        clock: Callable[[], datetime] = utc_now
    ):
        self.chat_client = chat_client
        self.retention = timedelta(hours=retention_hours)
        self.enabled = enabled
        self.max_messages = max_messages
        self.clock = clock
        self.logger = get_app_logger()

    def should_attempt_recovery(self, thread_ts: str) -> bool:
        """Only threads started within the retention window are worth recovering."""
        if not self.enabled:
            return False

        started = thread_started_at(thread_ts)
        if started is None:
            return False

        return self.clock() - started < self.retention

    async def recover(
        self,
        channel_id: str,
        thread_ts: str,
        bot_user_id: str
    ) -> Optional[RecoveredConversation]:
        """
        Fetch the thread transcript and rebuild its history.

        Args:
            channel_id: Channel the thread lives in
            thread_ts: Thread timestamp (also the origin message timestamp)
            bot_user_id: Bot user ID, used to tell assistant turns from human ones

        Returns:
            RecoveredConversation, or None when the thread is not eligible,
            the fetch fails or the transcript is empty
        """
        if not self.should_attempt_recovery(thread_ts):
            return None

        try:
            messages = await self.chat_client.fetch_thread_replies(
                channel_id, thread_ts, limit=self.max_messages
            )
        except ChatClientError as e:
            self.logger.error(f"Failed to recover conversation history for thread {thread_ts}: {e}")
            return None

        if not messages:
            return None

        recovered = self._rebuild(messages, thread_ts, bot_user_id)
        self.logger.info(
            f"Recovered {len(recovered.history)} turns from {recovered.message_count} messages "
            f"for thread {thread_ts}"
        )
        return recovered

    def _rebuild(
        self,
        messages: List[TranscriptMessage],
        thread_ts: str,
        bot_user_id: str
    ) -> RecoveredConversation:
        recovered = RecoveredConversation(message_count=len(messages))

        for message in messages:
            text = message.text
            if not text.strip():
                continue

            if message.ts == thread_ts:
                recovered.original_request = strip_mentions(text)
                recovered.requested_by = message.user
                continue

            from_bot = bool(message.bot_id) or (bool(bot_user_id) and message.user == bot_user_id)
            role = MessageRole.ASSISTANT if from_bot else MessageRole.HUMAN
            if from_bot:
                recovered.assistant_turns += 1
            recovered.history.append(ConversationMessage(role=role, content=text))

        return recovered
