"""Shared fixtures and collaborator fakes."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from taskbot.clients.base import (
    ChatClient,
    ChatClientError,
    CompletionClient,
    CompletionError,
    TicketingClient,
)
from taskbot.handlers import MentionHandler, ThreadHandler
from taskbot.models.conversation import ConversationMessage, TaskKind
from taskbot.models.integrations import (
    ClassificationResult,
    OperationResult,
    SprintInfo,
    TicketResult,
    TicketUser,
    TranscriptMessage,
)
from taskbot.services.conversation_store import ConversationStore
from taskbot.services.history_recovery import HistoryRecoveryService
from taskbot.services.persistence import LoadedState

BOT_USER_ID = "UBOT"
CHANNEL = "C123"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    def slack_ts(self, **ago) -> str:
        """Slack timestamp for a moment before now."""
        return f"{(self.now - timedelta(**ago)).timestamp():.6f}"


class FakePersistence:
    """Records snapshot requests instead of writing files."""

    def __init__(self, loaded: Optional[LoadedState] = None):
        self.loaded = loaded or LoadedState()
        self.scheduled: List[dict] = []
        self.forced: List[dict] = []

    async def load(self, retention: timedelta) -> LoadedState:
        return self.loaded

    def schedule_save(self, snapshot) -> None:
        self.scheduled.append(snapshot)

    async def save_now(self, snapshot) -> bool:
        self.forced.append(snapshot)
        return True


class FakeChat(ChatClient):
    def __init__(self):
        self.posts: List[tuple] = []
        self.transcripts: Dict[str, List[TranscriptMessage]] = {}
        self.emails: Dict[str, str] = {}
        self.fetch_calls: List[str] = []
        self.fail_fetch = False
        self._next_ts = 1000

    async def fetch_thread_replies(self, channel_id: str, thread_ts: str, limit: int = 100) -> List[TranscriptMessage]:
        self.fetch_calls.append(thread_ts)
        if self.fail_fetch:
            raise ChatClientError("conversations.replies failed: channel_not_found")
        return self.transcripts.get(thread_ts, [])[:limit]

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> Optional[str]:
        self.posts.append((channel_id, text, thread_ts))
        self._next_ts += 1
        return f"{self._next_ts}.000100"

    async def get_user_email(self, user_id: str) -> Optional[str]:
        return self.emails.get(user_id)

    @property
    def texts(self) -> List[str]:
        return [text for _, text, _ in self.posts]

    @property
    def last_text(self) -> str:
        return self.posts[-1][1]


class FakeCompletion(CompletionClient):
    def __init__(self):
        self.classification = ClassificationResult(
            is_relevant=True,
            intent="task",
            task_kind=TaskKind.FEATURE,
            affected_areas=["playlist"],
            summary="Filter playlists by mood",
        )
        self.questions: List[str] = []
        self.spec = "*Task Specification: Mood filter*\n\nBody"
        self.answer = "Playlists are filtered in the service layer."
        self.fail = False
        self.calls: List[tuple] = []

    def _check(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        if self.fail:
            raise CompletionError(f"{name} failed")

    async def classify_request(self, text: str) -> ClassificationResult:
        self._check("classify", text)
        return self.classification

    async def generate_questions(self, request: str, context: str, history: Sequence[ConversationMessage]) -> str:
        self._check("questions", request, len(history))
        if self.questions:
            return self.questions.pop(0)
        return "1. Who should see the filter?"

    async def generate_spec(self, request: str, context: str, history: Sequence[ConversationMessage]) -> str:
        self._check("spec", request, len(history))
        return self.spec

    async def answer_question(self, question: str, context: str, history: Sequence[ConversationMessage]) -> str:
        self._check("answer", question, len(history))
        return self.answer

    def called(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


class FakeTicketing(TicketingClient):
    def __init__(self):
        self.configured = True
        self.board = True
        self.create_results: List[TicketResult] = []
        self.active_sprint: Optional[SprintInfo] = SprintInfo(id=7, name="Sprint 7", state="active")
        self.recent_sprints: List[SprintInfo] = []
        self.users_by_email: Dict[str, TicketUser] = {}
        self.assignable: List[TicketUser] = []
        self.move_result = OperationResult(success=True)
        self.create_error: Optional[Exception] = None
        self.created: List[tuple] = []
        self.moved: List[tuple] = []

    def is_configured(self) -> bool:
        return self.configured

    def has_board(self) -> bool:
        return self.board

    async def create_issue(self, spec: str, task_kind, reporter_account_id: Optional[str] = None) -> TicketResult:
        self.created.append((spec, task_kind, reporter_account_id))
        if self.create_error is not None:
            raise self.create_error
        if self.create_results:
            return self.create_results.pop(0)
        return TicketResult(success=True, key="PROJ-1", url="https://jira.example.com/browse/PROJ-1")

    async def get_active_sprint(self) -> Optional[SprintInfo]:
        return self.active_sprint if self.board else None

    async def list_recent_sprints(self) -> List[SprintInfo]:
        return self.recent_sprints

    async def move_issue_to_sprint(self, issue_key: str, sprint_id: int) -> OperationResult:
        self.moved.append((issue_key, sprint_id))
        return self.move_result

    async def find_user_by_email(self, email: str) -> Optional[TicketUser]:
        return self.users_by_email.get(email)

    async def list_assignable_users(self) -> List[TicketUser]:
        return self.assignable


class FakeContextBuilder:
    def __init__(self):
        self.requests: List[list] = []

    async def build_for_request(self, areas: Sequence[str]) -> str:
        self.requests.append(list(areas))
        return f"context for {', '.join(areas) or 'everything'}"

    async def build_full_summary(self) -> str:
        return "full project summary"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def persistence():
    return FakePersistence()


@pytest.fixture
def store(persistence, clock):
    return ConversationStore(persistence, max_question_rounds=5, clock=clock)


@pytest.fixture
def chat():
    return FakeChat()


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def ticketing():
    return FakeTicketing()


@pytest.fixture
def context_builder():
    return FakeContextBuilder()


@pytest.fixture
def recovery(chat, clock):
    return HistoryRecoveryService(chat, retention_hours=24, enabled=True, max_messages=100, clock=clock)


@pytest.fixture
def mention_handler(store, chat, completion, context_builder):
    return MentionHandler(store, chat, completion, context_builder)


@pytest.fixture
def thread_handler(store, chat, completion, ticketing, context_builder, recovery):
    return ThreadHandler(store, chat, completion, ticketing, context_builder, recovery, retention_hours=24)
