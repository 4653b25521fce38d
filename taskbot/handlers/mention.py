"""New conversations: top-level @mentions and the /task slash command."""

from typing import Optional

from ..clients.base import ChatClient, CompletionClient, CompletionError
from ..models.conversation import ConversationMode, TaskKind
from ..models.integrations import SlackMessageEvent
from ..services.context_builder import CodebaseContextBuilder
from ..services.conversation_store import ConversationStore
from ..utils.help import HELP_MESSAGE, is_help_request
from ..utils.logger import get_app_logger
from ..utils.slack_text import strip_mentions

NOT_RELEVANT_MESSAGE = (
    "This doesn't seem to be related to the project. I can help answer questions about "
    "the codebase or spec out features, fixes, and changes. Could you rephrase your request?"
)
COMPLETION_FAILED_MESSAGE = (
    ":warning: I ran into a problem talking to the assistant service. Please try again in a moment."
)
SLASH_USAGE_MESSAGE = (
    "Please provide a task description. Example: `/task add a new endpoint to filter playlists by mood`"
)


def task_label(task_kind: Optional[TaskKind]) -> str:
    return f"*{task_kind.value.capitalize()}*" if task_kind else "*Task*"


class MentionHandler:
    """Starts conversations from requests addressed to the bot."""

    def __init__(
        self,
        store: ConversationStore,
        chat: ChatClient,
        completion: CompletionClient,
        context_builder: CodebaseContextBuilder
    ):
        self.store = store
        self.chat = chat
        self.completion = completion
        self.context_builder = context_builder
        self.logger = get_app_logger()

    async def handle(self, event: SlackMessageEvent) -> None:
        """
        Handle an ``app_mention`` event.

        Mentions inside an existing thread are left to the thread handler,
        which also receives them as ``message`` events.
        """
        if event.thread_ts:
            return

        thread_ts = event.ts
        channel_id = event.channel
        request = strip_mentions(event.text)

        if not request or is_help_request(request):
            await self.chat.post_message(channel_id, HELP_MESSAGE, thread_ts)
            return

        await self.chat.post_message(channel_id, ":thinking_face: Analyzing your request...", thread_ts)

        try:
            await self._start_conversation(event, request)
        except CompletionError as e:
            self.logger.error(f"Failed to start conversation for {thread_ts}: {e}")
            await self.chat.post_message(channel_id, COMPLETION_FAILED_MESSAGE, thread_ts)

    async def _start_conversation(self, event: SlackMessageEvent, request: str) -> None:
        thread_ts = event.ts
        channel_id = event.channel

        classification = await self.completion.classify_request(request)
        if not classification.is_relevant:
            await self.chat.post_message(channel_id, NOT_RELEVANT_MESSAGE, thread_ts)
            return

        context = await self.context_builder.build_for_request(classification.affected_areas)

        if not classification.is_task:
            await self.chat.post_message(channel_id, ":mag: Looking through the codebase...", thread_ts)
            answer = await self.completion.answer_question(request, context, [])

            self.store.create(
                thread_ts,
                channel_id,
                ConversationMode.QUESTION,
                request,
                None,
                classification.affected_areas,
                context,
                slack_user_id=event.user,
            )
            await self.chat.post_message(
                channel_id,
                f"*Question:* {classification.summary}\n\n{answer}\n\n"
                "_Feel free to ask follow-up questions in this thread!_",
                thread_ts,
            )
            self.store.append_assistant(thread_ts, answer)
            return

        questions = await self.completion.generate_questions(request, context, [])
        self.store.create(
            thread_ts,
            channel_id,
            ConversationMode.TASK,
            request,
            classification.task_kind,
            classification.affected_areas,
            context,
            slack_user_id=event.user,
        )

        header = (
            f"{task_label(classification.task_kind)}: {classification.summary}\n\n"
            "I've analyzed the codebase. Here are some questions to help me spec this out:\n\n"
        )
        await self.chat.post_message(channel_id, header + questions, thread_ts)
        self.store.append_assistant(thread_ts, questions)

    async def handle_slash_command(self, channel_id: str, user_id: str, text: str) -> Optional[str]:
        """
        Handle ``/task <description>``.

        The questions are posted as a new channel message; its timestamp
        becomes the thread the conversation lives in.

        Returns:
            Thread timestamp of the new conversation, or None
        """
        request = (text or "").strip()
        if not request:
            await self.chat.post_message(channel_id, SLASH_USAGE_MESSAGE)
            return None

        await self.chat.post_message(
            channel_id,
            f":wave: Task received from <@{user_id}>: _{request}_\n\n:thinking_face: Analyzing...",
        )

        try:
            classification = await self.completion.classify_request(request)
            if not classification.is_relevant:
                await self.chat.post_message(
                    channel_id,
                    "This doesn't seem related to the project. I can help with task specs for features, "
                    "fixes, and changes. To ask questions about the codebase, @mention me instead!",
                )
                return None

            context = await self.context_builder.build_for_request(classification.affected_areas)
            questions = await self.completion.generate_questions(request, context, [])
        except CompletionError as e:
            self.logger.error(f"Failed to handle /task from {user_id}: {e}")
            await self.chat.post_message(channel_id, COMPLETION_FAILED_MESSAGE)
            return None

        thread_ts = await self.chat.post_message(
            channel_id,
            f"{task_label(classification.task_kind)}: {classification.summary}\n\n{questions}\n\n"
            '_Reply in this thread to answer. Say "generate spec" when ready._',
        )
        if not thread_ts:
            return None

        self.store.create(
            thread_ts,
            channel_id,
            ConversationMode.TASK,
            request,
            classification.task_kind,
            classification.affected_areas,
            context,
            slack_user_id=user_id,
        )
        self.store.append_assistant(thread_ts, questions)
        return thread_ts

    async def handle_help_command(self, channel_id: str) -> None:
        await self.chat.post_message(channel_id, HELP_MESSAGE)
