"""In-memory conversation store and stage machine.

The store owns every ConversationRecord, keyed by Slack thread timestamp.
Construction is two-phase: build the store empty, then ``await load()``
once before handling traffic. Every mutation refreshes ``last_activity`` and
schedules a debounced snapshot write; none of them wait on disk I/O.

Mutations on a missing thread, or on a thread whose stage is COMPLETE, are
silent no-ops. ``create`` is the only operation that fabricates a record.
"""

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from ..models.conversation import (
    ConversationMessage,
    ConversationMode,
    ConversationRecord,
    ConversationStage,
    MessageRole,
    ReporterOption,
    ResolvedReporter,
    ResolvedSprint,
    SprintOption,
    TaskKind,
    utc_now,
)
from ..utils.logger import get_app_logger
from . import triggers
from .persistence import ConversationPersistence, Snapshot

DEFAULT_MAX_QUESTION_ROUNDS = 5


class ConversationStore:
    """Keyed collection of conversation records with stage transitions."""

    def __init__(
        self,
        persistence: ConversationPersistence,
        max_question_rounds: int = DEFAULT_MAX_QUESTION_ROUNDS,
        clock: Callable[[], datetime] = utc_now
    ):
        self.persistence = persistence
        self.max_question_rounds = max_question_rounds
        self.clock = clock
        self.logger = get_app_logger()
        self._conversations: Dict[str, ConversationRecord] = {}

    # === Lifecycle ===

    async def load(self, retention: timedelta) -> int:
        """
        Replace the collection with the persisted snapshot.

        Returns:
            Number of conversations restored
        """
        loaded = await self.persistence.load(retention)
        self._conversations = dict(loaded.conversations)
        return len(self._conversations)

    async def shutdown(self) -> bool:
        """Force an immediate snapshot write."""
        return await self.persistence.save_now(self.snapshot())

    def snapshot(self) -> Snapshot:
        """JSON-ready copy of the whole collection."""
        return {
            thread_ts: record.model_dump(mode="json")
            for thread_ts, record in self._conversations.items()
        }

    # === Queries ===

    def get(self, thread_ts: str) -> Optional[ConversationRecord]:
        return self._conversations.get(thread_ts)

    def list_conversations(self) -> List[ConversationRecord]:
        """All live conversations, most recently active first."""
        return sorted(self._conversations.values(), key=lambda c: c.last_activity, reverse=True)

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, thread_ts: str) -> bool:
        return thread_ts in self._conversations

    # === Creation ===

    def create(
        self,
        thread_ts: str,
        channel_id: str,
        mode: ConversationMode,
        original_request: str,
        task_kind: Optional[TaskKind],
        affected_areas: Sequence[str],
        codebase_context: str,
        slack_user_id: Optional[str] = None
    ) -> ConversationRecord:
        """Create a record for a thread, replacing any previous one."""
        now = self._now()
        record = ConversationRecord(
            thread_ts=thread_ts,
            channel_id=channel_id,
            mode=mode,
            original_request=original_request,
            task_kind=task_kind,
            affected_areas=list(affected_areas),
            codebase_context=codebase_context,
            slack_user_id=slack_user_id,
            stage=ConversationStage.QUESTIONING,
            question_rounds=0,
            created_at=now,
            last_activity=now,
        )
        if thread_ts in self._conversations:
            self.logger.info(f"Replacing existing conversation for thread {thread_ts}")
        self._conversations[thread_ts] = record
        self._save()
        self.logger.info(f"Created {mode.value} conversation for thread {thread_ts}")
        return record

    # === History ===

    def append_human(self, thread_ts: str, text: str) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.history.append(ConversationMessage(role=MessageRole.HUMAN, content=text))
        self._touch(record)

    def append_assistant(self, thread_ts: str, text: str) -> None:
        """Append an assistant turn; each one counts as a question round."""
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.history.append(ConversationMessage(role=MessageRole.ASSISTANT, content=text))
        record.question_rounds += 1
        self._touch(record)

    def restore_history(self, thread_ts: str, history: Sequence[ConversationMessage]) -> None:
        """
        Assign a recovered transcript wholesale.

        Exact assistant-turn counts are not recoverable from a flat transcript,
        so the round counter is approximated as half the history length.
        """
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.history = [message.model_copy() for message in history]
        record.question_rounds = max(record.question_rounds, len(record.history) // 2)
        self._touch(record)

    # === Trigger checks ===

    def should_generate_specification(self, thread_ts: str, last_human_text: str) -> bool:
        """
        Advisory check: completion phrase, or the round ceiling reached in task mode.
        """
        record = self._conversations.get(thread_ts)
        if record is None:
            return False

        if triggers.is_completion_request(last_human_text):
            return True

        return record.mode == ConversationMode.TASK and record.question_rounds >= self.max_question_rounds

    def should_switch_to_task_mode(self, thread_ts: str, text: str) -> bool:
        record = self._conversations.get(thread_ts)
        if record is None or record.mode != ConversationMode.QUESTION or record.is_complete:
            return False
        return triggers.is_mode_switch_request(text)

    def should_create_ticket(self, thread_ts: str, text: str) -> bool:
        record = self._conversations.get(thread_ts)
        if record is None or record.stage != ConversationStage.AWAITING_DECISION:
            return False
        return triggers.is_decision_affirmative(text)

    def should_decline_ticket(self, thread_ts: str, text: str) -> bool:
        record = self._conversations.get(thread_ts)
        if record is None or record.stage != ConversationStage.AWAITING_DECISION:
            return False
        return triggers.is_decision_negative(text)

    # === Stage transitions ===

    def mark_complete(self, thread_ts: str) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.stage = ConversationStage.COMPLETE
        record.pending_reporter_options = None
        record.pending_sprint_options = None
        self._touch(record)
        self.logger.info(f"Conversation {thread_ts} complete")

    def store_specification(self, thread_ts: str, spec_text: str) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.generated_spec = spec_text
        self._touch(record)

    def set_awaiting_decision(self, thread_ts: str, spec_text: str) -> None:
        """Offer ticket creation for the given specification."""
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.stage = ConversationStage.AWAITING_DECISION
        record.generated_spec = spec_text
        record.pending_reporter_options = None
        record.pending_sprint_options = None
        self._touch(record)

    def set_awaiting_reporter_selection(self, thread_ts: str, options: Sequence[ReporterOption]) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.stage = ConversationStage.AWAITING_REPORTER_SELECTION
        record.pending_reporter_options = list(options)
        record.pending_sprint_options = None
        self._touch(record)

    def set_awaiting_sprint_selection(self, thread_ts: str, options: Sequence[SprintOption]) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.stage = ConversationStage.AWAITING_SPRINT_SELECTION
        record.pending_sprint_options = list(options)
        record.pending_reporter_options = None
        self._touch(record)

    def set_resolved_reporter(self, thread_ts: str, account_id: str, display_name: str) -> None:
        """Record the reporter once; the reporter menu is consumed. Stage is unchanged."""
        record = self._mutable(thread_ts)
        if record is None:
            return
        if record.resolved_reporter is not None:
            self.logger.debug(f"Reporter already resolved for {thread_ts}, keeping {record.resolved_reporter.display_name}")
        else:
            record.resolved_reporter = ResolvedReporter(account_id=account_id, display_name=display_name)
        record.pending_reporter_options = None
        self._touch(record)

    def set_resolved_sprint(self, thread_ts: str, sprint_id: int, name: str) -> None:
        """Record the sprint once; the sprint menu is consumed. Stage is unchanged."""
        record = self._mutable(thread_ts)
        if record is None:
            return
        if record.resolved_sprint is not None:
            self.logger.debug(f"Sprint already resolved for {thread_ts}, keeping {record.resolved_sprint.name}")
        else:
            record.resolved_sprint = ResolvedSprint(id=sprint_id, name=name)
        record.pending_sprint_options = None
        self._touch(record)

    def store_ticket_key(self, thread_ts: str, key: str) -> None:
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.ticket_key = key
        self._touch(record)

    def switch_to_task_mode(
        self,
        thread_ts: str,
        task_kind: Optional[TaskKind],
        affected_areas: Sequence[str]
    ) -> bool:
        """
        Turn a question conversation into a task conversation.

        History and the round counter carry over; the stage restarts at questioning.

        Returns:
            True if the switch happened
        """
        record = self._mutable(thread_ts)
        if record is None or record.mode != ConversationMode.QUESTION:
            return False
        record.mode = ConversationMode.TASK
        record.task_kind = task_kind
        record.affected_areas = list(affected_areas)
        record.stage = ConversationStage.QUESTIONING
        self._touch(record)
        self.logger.info(f"Conversation {thread_ts} switched to task mode")
        return True

    def set_context(self, thread_ts: str, codebase_context: str) -> None:
        """Replace the context blob (mode switch and recovery only)."""
        record = self._mutable(thread_ts)
        if record is None:
            return
        record.codebase_context = codebase_context
        self._touch(record)

    # === Retention ===

    def cleanup_expired(self, retention: timedelta) -> int:
        """
        Delete conversations idle for longer than the retention window.

        Returns:
            Number of conversations deleted
        """
        cutoff = self.clock() - retention
        expired = [
            thread_ts for thread_ts, record in self._conversations.items()
            if record.last_activity < cutoff
        ]
        for thread_ts in expired:
            del self._conversations[thread_ts]

        if expired:
            self.logger.info(f"Cleaned up {len(expired)} expired conversations")
            self._save()
        return len(expired)

    # === Internals ===

    def _now(self) -> datetime:
        # Millisecond precision matches the on-disk representation
        now = self.clock()
        return now.replace(microsecond=now.microsecond - now.microsecond % 1000)

    def _mutable(self, thread_ts: str) -> Optional[ConversationRecord]:
        record = self._conversations.get(thread_ts)
        if record is None or record.is_complete:
            return None
        return record

    def _touch(self, record: ConversationRecord) -> None:
        record.last_activity = self._now()
        self._save()

    def _save(self) -> None:
        self.persistence.schedule_save(self.snapshot())
