"""Thread replies: the driver of the conversation stage machine."""

import asyncio
from typing import List, Optional

from ..clients.base import ChatClient, CompletionClient, CompletionError, TicketingClient, TicketingError
from ..models.conversation import (
    ConversationMode,
    ConversationRecord,
    ConversationStage,
    MessageRole,
    ReporterOption,
    SprintOption,
)
from ..models.integrations import SlackMessageEvent, TicketUser
from ..services import triggers
from ..services.context_builder import CodebaseContextBuilder
from ..services.conversation_store import ConversationStore
from ..services.history_recovery import HistoryRecoveryService
from ..utils.help import HELP_MESSAGE, is_help_request
from ..utils.logger import get_app_logger
from ..utils.slack_text import find_mentions, strip_mentions
from .mention import COMPLETION_FAILED_MESSAGE, task_label

# Replies that tag other people and are at most this short are addressed to them
TAG_ONLY_MAX_CHARS = 120

COMPLETE_NOTICE = (
    ":white_check_mark: This conversation is complete. "
    "Please start a new thread or @mention me to begin a new request."
)
TICKET_OFFER = (
    ":ticket: Would you like me to create a Jira ticket for this task?\n\n"
    "Reply *'yes'* or *'create ticket'* to proceed, or *'no'* / *'skip'* if not needed."
)
DECISION_REPROMPT = (
    ":thinking_face: I didn't quite catch that. Reply *'yes'* or *'create ticket'* to create "
    "a Jira ticket, or *'no'* / *'skip'* if not needed."
)
READY_SUFFIX = (
    "\n\nI think I have enough information. Reply with *\"generate spec\"* when you're ready, "
    "or add more details if needed."
)
TICKETING_FAILED_MESSAGE = (
    ":warning: I ran into a problem talking to Jira. "
    "Reply *'retry'* or *'create ticket'* to try again, or *'skip'* if not needed."
)
MODE_SWITCH_HINT = (
    "\n\n_:bulb: Tip: If you'd like to turn this into a task specification, "
    "just say *\"create a spec\"* or *\"generate spec\"*._"
)


class ThreadHandler:
    """Routes thread replies according to conversation mode and stage."""

    def __init__(
        self,
        store: ConversationStore,
        chat: ChatClient,
        completion: CompletionClient,
        ticketing: TicketingClient,
        context_builder: CodebaseContextBuilder,
        recovery: HistoryRecoveryService,
        retention_hours: int = 24
    ):
        self.store = store
        self.chat = chat
        self.completion = completion
        self.ticketing = ticketing
        self.context_builder = context_builder
        self.recovery = recovery
        self.retention_hours = retention_hours
        self.logger = get_app_logger()

    async def handle(self, event: SlackMessageEvent, bot_user_id: str) -> None:
        """Handle a ``message`` event posted inside a thread."""
        if not event.thread_ts or event.bot_id or event.subtype:
            return

        text = event.text
        if not text.strip():
            return

        mentions = find_mentions(text)
        addressed = bool(bot_user_id) and bot_user_id.upper() in mentions
        if self._only_tags_others(text, mentions, bot_user_id):
            return

        thread_ts = event.thread_ts
        record = self.store.get(thread_ts)
        if record is None:
            record = await self._recover(event, bot_user_id, addressed)
            if record is None:
                return

        if record.is_complete:
            await self._say(record, COMPLETE_NOTICE)
            return

        if is_help_request(text):
            await self._say(record, HELP_MESSAGE)
            return

        self.store.append_human(thread_ts, text)

        try:
            if record.mode == ConversationMode.QUESTION:
                await self._handle_question_mode(record, text)
            else:
                await self._handle_task_mode(record, text)
        except CompletionError as e:
            self.logger.error(f"Completion failed for thread {thread_ts} ({record.stage.value}): {e}")
            await self._say(record, COMPLETION_FAILED_MESSAGE)
        except TicketingError as e:
            self.logger.error(f"Ticketing failed for thread {thread_ts} ({record.stage.value}): {e}")
            await self._say(record, TICKETING_FAILED_MESSAGE)
            if record.generated_spec is not None:
                self.store.set_awaiting_decision(thread_ts, record.generated_spec)

    @staticmethod
    def _only_tags_others(text: str, mentions: List[str], bot_user_id: str) -> bool:
        """A short reply that tags someone else is meant for them, not for the bot."""
        others = [m for m in mentions if m != (bot_user_id or "").upper()]
        if not others:
            return False
        remainder = strip_mentions(text)
        return len(remainder) < TAG_ONLY_MAX_CHARS and "\n" not in remainder

    async def _say(self, record: ConversationRecord, text: str) -> None:
        await self.chat.post_message(record.channel_id, text, record.thread_ts)

    # === Recovery ===

    async def _recover(
        self,
        event: SlackMessageEvent,
        bot_user_id: str,
        addressed: bool
    ) -> Optional[ConversationRecord]:
        """
        Rebuild a conversation the store does not know about.

        Threads outside the recovery window are answered with the lost-context
        notice only when the reply addresses the bot; threads the bot never
        took part in are ignored.
        """
        thread_ts = event.thread_ts
        channel_id = event.channel

        if not self.recovery.should_attempt_recovery(thread_ts):
            if addressed:
                await self._post_lost_context(channel_id, thread_ts)
            return None

        recovered = await self.recovery.recover(channel_id, thread_ts, bot_user_id)
        if recovered is None:
            await self._post_lost_context(channel_id, thread_ts)
            return None

        if recovered.assistant_turns == 0:
            if addressed:
                await self._post_lost_context(channel_id, thread_ts)
            return None

        history = list(recovered.history)
        # The transcript already contains the reply being handled
        if history and history[-1].role == MessageRole.HUMAN and history[-1].content == event.text:
            history.pop()

        await self.chat.post_message(
            channel_id,
            ":arrows_counterclockwise: I had to recover our conversation history after a restart. "
            f"I've restored {recovered.message_count} messages. Let's continue!",
            thread_ts,
        )

        task_kind = None
        affected_areas = []
        try:
            classification = await self.completion.classify_request(recovered.original_request)
            task_kind = classification.task_kind
            affected_areas = classification.affected_areas
        except CompletionError as e:
            self.logger.warning(f"Could not classify recovered request for {thread_ts}: {e}")

        context = await self.context_builder.build_full_summary()
        record = self.store.create(
            thread_ts,
            channel_id,
            ConversationMode.TASK,
            recovered.original_request,
            task_kind,
            affected_areas,
            context,
            slack_user_id=recovered.requested_by,
        )
        self.store.restore_history(thread_ts, history)
        return record

    async def _post_lost_context(self, channel_id: str, thread_ts: str) -> None:
        await self.chat.post_message(
            channel_id,
            f":warning: I lost the context of our conversation (retention: {self.retention_hours} hours). "
            "Please start a new thread or briefly remind me what we were discussing.",
            thread_ts,
        )

    # === Question mode ===

    async def _handle_question_mode(self, record: ConversationRecord, text: str) -> None:
        thread_ts = record.thread_ts

        if self.store.should_switch_to_task_mode(thread_ts, text):
            await self._switch_to_task_mode(record, text)
            return

        await self._say(record, ":mag: Looking that up...")
        answer = await self.completion.answer_question(text, record.codebase_context, record.history)

        rounds = record.question_rounds
        hint = MODE_SWITCH_HINT if rounds >= 2 and rounds % 3 == 0 else ""
        await self._say(record, answer + hint)
        self.store.append_assistant(thread_ts, answer)

    async def _switch_to_task_mode(self, record: ConversationRecord, text: str) -> None:
        thread_ts = record.thread_ts
        await self._say(record, ":gear: Switching to task mode...")

        transcript = "\n\n".join(f"{m.role.value}: {m.content}" for m in record.history)
        full_request = f"{record.original_request}\n\n{transcript}\n\nUser now says: {text}"

        classification = await self.completion.classify_request(full_request)
        self.store.switch_to_task_mode(thread_ts, classification.task_kind, classification.affected_areas)

        context = await self.context_builder.build_for_request(classification.affected_areas)
        self.store.set_context(thread_ts, context)

        questions = await self.completion.generate_questions(full_request, context, record.history)
        summary = classification.summary or "Creating task specification"
        await self._say(record, f":clipboard: {task_label(classification.task_kind)}: {summary}\n\n{questions}")
        self.store.append_assistant(thread_ts, questions)

    # === Task mode ===

    async def _handle_task_mode(self, record: ConversationRecord, text: str) -> None:
        # Ticket sub-stages first, so "yes" or "2" never regenerates the spec
        if record.stage == ConversationStage.AWAITING_DECISION:
            await self._handle_decision(record, text)
            return
        if record.stage == ConversationStage.AWAITING_REPORTER_SELECTION:
            await self._handle_reporter_selection(record, text)
            return
        if record.stage == ConversationStage.AWAITING_SPRINT_SELECTION:
            await self._handle_sprint_selection(record, text)
            return

        if self.store.should_generate_specification(record.thread_ts, text):
            await self._generate_specification(record)
            return

        await self._ask_next_questions(record)

    async def _generate_specification(self, record: ConversationRecord) -> None:
        thread_ts = record.thread_ts
        await self._say(record, ":memo: Generating your task specification...")

        spec = await self.completion.generate_spec(record.original_request, record.codebase_context, record.history)
        await self._say(record, spec)

        if self.ticketing.is_configured():
            await self._say(record, TICKET_OFFER)
            self.store.set_awaiting_decision(thread_ts, spec)
        else:
            self.store.store_specification(thread_ts, spec)
            self.store.mark_complete(thread_ts)

    async def _ask_next_questions(self, record: ConversationRecord) -> None:
        await self._say(record, ":thinking_face: Processing your answers...")

        response = await self.completion.generate_questions(
            record.original_request, record.codebase_context, record.history
        )

        if triggers.is_ready_for_spec(response):
            cleaned = triggers.strip_ready_sentinel(response)
            await self._say(record, cleaned + READY_SUFFIX)
            self.store.append_assistant(record.thread_ts, cleaned)
            return

        await self._say(record, response)
        self.store.append_assistant(record.thread_ts, response)

    # === Ticket creation ===

    async def _handle_decision(self, record: ConversationRecord, text: str) -> None:
        thread_ts = record.thread_ts

        if self.store.should_create_ticket(thread_ts, text):
            await self._say(record, ":mag: Resolving reporter and sprint...")
            await self._resolve_reporter_and_sprint(record)
        elif self.store.should_decline_ticket(thread_ts, text):
            await self._say(record, ":ok_hand: No problem! The spec is ready above.")
            self.store.mark_complete(thread_ts)
        else:
            await self._say(record, DECISION_REPROMPT)

    async def _resolve_reporter_and_sprint(self, record: ConversationRecord) -> None:
        thread_ts = record.thread_ts
        reporter, sprint = await asyncio.gather(
            self._lookup_reporter(record),
            self._lookup_active_sprint(record),
        )

        if sprint is not None:
            self.store.set_resolved_sprint(thread_ts, sprint.id, sprint.name)

        if record.resolved_reporter is not None:
            await self._proceed_to_sprint_or_create(record)
            return

        if reporter is not None:
            self.store.set_resolved_reporter(thread_ts, reporter.account_id, reporter.display_name)
            await self._say(record, f":bust_in_silhouette: Setting *{reporter.display_name}* as reporter.")
            await self._proceed_to_sprint_or_create(record)
            return

        users = await self.ticketing.list_assignable_users()
        if not users:
            await self._say(record, ":information_source: Could not resolve reporter. Creating ticket with default reporter.")
            await self._proceed_to_sprint_or_create(record)
            return

        menu = "\n".join(
            f"*{i}.* {user.display_name}" + (f" ({user.email_address})" if user.email_address else "")
            for i, user in enumerate(users, start=1)
        )
        await self._say(
            record,
            ":bust_in_silhouette: I couldn't match your Slack account to a Jira user. "
            f"Please select a reporter:\n\n{menu}\n\n"
            "Reply with the number, or *\"skip\"* to use the default reporter.",
        )
        self.store.set_awaiting_reporter_selection(
            thread_ts,
            [ReporterOption(account_id=u.account_id, display_name=u.display_name) for u in users],
        )

    async def _lookup_reporter(self, record: ConversationRecord) -> Optional[TicketUser]:
        """Match the requesting Slack user to a Jira user by email."""
        if record.resolved_reporter is not None or not record.slack_user_id:
            return None

        email = await self.chat.get_user_email(record.slack_user_id)
        if not email:
            self.logger.info(f"No email found for Slack user {record.slack_user_id}")
            return None

        user = await self.ticketing.find_user_by_email(email)
        if user is None:
            self.logger.info(f"No Jira user found for email {email}")
        return user

    async def _lookup_active_sprint(self, record: ConversationRecord):
        if record.resolved_sprint is not None:
            return None
        return await self.ticketing.get_active_sprint()

    async def _handle_reporter_selection(self, record: ConversationRecord, text: str) -> None:
        if triggers.is_skip_selection(text, allow_default=True):
            await self._say(record, ":ok_hand: Using default reporter.")
            await self._proceed_to_sprint_or_create(record)
            return

        options = record.pending_reporter_options or []
        index = triggers.parse_numeric_selection(text, len(options))
        if index is None:
            await self._say(
                record,
                f":warning: Please reply with a number (1-{len(options)}) or *\"skip\"* to use the default reporter.",
            )
            return

        selected = options[index]
        self.store.set_resolved_reporter(record.thread_ts, selected.account_id, selected.display_name)
        await self._say(record, f":bust_in_silhouette: Setting *{selected.display_name}* as reporter.")
        await self._proceed_to_sprint_or_create(record)

    async def _handle_sprint_selection(self, record: ConversationRecord, text: str) -> None:
        if triggers.is_skip_selection(text):
            await self._say(record, ":ok_hand: Creating ticket without sprint assignment.")
            await self._create_ticket_and_assign_sprint(record)
            return

        options = record.pending_sprint_options or []
        index = triggers.parse_numeric_selection(text, len(options))
        if index is None:
            await self._say(
                record,
                f":warning: Please reply with a number (1-{len(options)}) or *\"skip\"* to create without a sprint.",
            )
            return

        selected = options[index]
        self.store.set_resolved_sprint(record.thread_ts, selected.id, selected.name)
        await self._say(record, f":runner: Assigning to sprint *{selected.name}*.")
        await self._create_ticket_and_assign_sprint(record)

    async def _proceed_to_sprint_or_create(self, record: ConversationRecord) -> None:
        if record.resolved_sprint is not None or not self.ticketing.has_board():
            await self._create_ticket_and_assign_sprint(record)
            return

        sprints = await self.ticketing.list_recent_sprints()
        if not sprints:
            await self._say(
                record,
                ":information_source: No sprints found for this board. Creating ticket without sprint assignment.",
            )
            await self._create_ticket_and_assign_sprint(record)
            return

        menu = "\n".join(f"*{i}.* {s.name} ({s.state})" for i, s in enumerate(sprints, start=1))
        await self._say(
            record,
            f":runner: I couldn't find an active sprint. Please select a sprint:\n\n{menu}\n\n"
            "Reply with the number, or *\"skip\"* to create without a sprint.",
        )
        self.store.set_awaiting_sprint_selection(
            record.thread_ts,
            [SprintOption(id=s.id, name=s.name, state=s.state) for s in sprints],
        )

    async def _create_ticket_and_assign_sprint(self, record: ConversationRecord) -> None:
        thread_ts = record.thread_ts
        spec = record.generated_spec or ""
        await self._say(record, ":hourglass: Creating Jira ticket...")

        reporter = record.resolved_reporter
        result = await self.ticketing.create_issue(
            spec,
            record.task_kind,
            reporter.account_id if reporter else None,
        )

        if not result.success:
            await self._say(
                record,
                f":warning: Failed to create Jira ticket: {result.error}\n\n"
                "Reply *'retry'* or *'create ticket'* to try again, or *'skip'* if not needed.",
            )
            self.store.set_awaiting_decision(thread_ts, spec)
            return

        message = f":white_check_mark: Jira ticket created: <{result.url}|{result.key}>"
        if result.reporter_dropped:
            message += "\n:warning: Reporter field is not available on the Jira create screen, ticket created with default reporter."
        elif reporter is not None:
            message += f"\n:bust_in_silhouette: Reporter: {reporter.display_name}"

        sprint = record.resolved_sprint
        if sprint is not None:
            moved = await self.ticketing.move_issue_to_sprint(result.key, sprint.id)
            if moved.success:
                message += f"\n:runner: Sprint: {sprint.name}"
            else:
                message += f"\n:warning: Failed to assign sprint: {moved.error}"

        await self._say(record, message)
        self.store.store_ticket_key(thread_ts, result.key)
        self.store.mark_complete(thread_ts)
