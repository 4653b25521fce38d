"""Collaborator interfaces: chat platform, completion service, ticketing."""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ..models.conversation import ConversationMessage, TaskKind
from ..models.integrations import (
    ClassificationResult,
    OperationResult,
    SprintInfo,
    TicketResult,
    TicketUser,
    TranscriptMessage,
)


class IntegrationError(Exception):
    """Base class for collaborator failures."""


class ChatClientError(IntegrationError):
    """Raised when the chat platform call fails."""


class CompletionError(IntegrationError):
    """Raised when the completion service call fails."""


class TicketingError(IntegrationError):
    """Raised when the ticketing system call fails."""


class ChatClient(ABC):
    """Chat platform operations the bot depends on."""

    @abstractmethod
    async def fetch_thread_replies(self, channel_id: str, thread_ts: str, limit: int = 100) -> List[TranscriptMessage]:
        """
        Fetch a thread transcript in chronological order.

        Raises:
            ChatClientError: If the transcript cannot be fetched
        """
        pass

    @abstractmethod
    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> Optional[str]:
        """
        Post a message (fire-and-forget).

        Returns:
            Timestamp of the posted message, or None if posting failed
        """
        pass

    @abstractmethod
    async def get_user_email(self, user_id: str) -> Optional[str]:
        """Look up a user's email address, None when unavailable."""
        pass


class CompletionClient(ABC):
    """Completion/classification service operations."""

    @abstractmethod
    async def classify_request(self, text: str) -> ClassificationResult:
        pass

    @abstractmethod
    async def generate_questions(
        self,
        request: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        """Next round of follow-up questions; may embed the ready sentinel."""
        pass

    @abstractmethod
    async def generate_spec(
        self,
        request: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        pass

    @abstractmethod
    async def answer_question(
        self,
        question: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        pass


class TicketingClient(ABC):
    """Ticketing system operations. None of them retry."""

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether tickets can be created at all."""
        pass

    @abstractmethod
    def has_board(self) -> bool:
        """Whether sprint assignment is available."""
        pass

    @abstractmethod
    async def create_issue(
        self,
        spec: str,
        task_kind: Optional[TaskKind],
        reporter_account_id: Optional[str] = None
    ) -> TicketResult:
        pass

    @abstractmethod
    async def get_active_sprint(self) -> Optional[SprintInfo]:
        pass

    @abstractmethod
    async def list_recent_sprints(self) -> List[SprintInfo]:
        pass

    @abstractmethod
    async def move_issue_to_sprint(self, issue_key: str, sprint_id: int) -> OperationResult:
        pass

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[TicketUser]:
        pass

    @abstractmethod
    async def list_assignable_users(self) -> List[TicketUser]:
        pass
