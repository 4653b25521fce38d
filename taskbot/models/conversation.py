"""Conversation state models."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Convert an aware datetime to integer epoch milliseconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return EPOCH + timedelta(milliseconds=value)


class ConversationMode(str, Enum):
    """Answer-only conversation vs. one building toward a specification."""

    QUESTION = "question"
    TASK = "task"


class TaskKind(str, Enum):
    """Kind of work a task conversation describes."""

    FEATURE = "feature"
    FIX = "fix"
    CHANGE = "change"


class ConversationStage(str, Enum):
    """
    Conversation stage.

    Flow:
      questioning → awaiting_decision → awaiting_reporter_selection → awaiting_sprint_selection → complete
                  ↘ complete (ticketing not configured, or decision declined)

    COMPLETE is terminal.
    """

    CLASSIFYING = "classifying"
    QUESTIONING = "questioning"
    AWAITING_DECISION = "awaiting_decision"
    AWAITING_REPORTER_SELECTION = "awaiting_reporter_selection"
    AWAITING_SPRINT_SELECTION = "awaiting_sprint_selection"
    COMPLETE = "complete"

    @property
    def is_terminal(self) -> bool:
        return self == ConversationStage.COMPLETE

    @property
    def is_ticket_flow(self) -> bool:
        return self in (
            ConversationStage.AWAITING_DECISION,
            ConversationStage.AWAITING_REPORTER_SELECTION,
            ConversationStage.AWAITING_SPRINT_SELECTION,
        )


class MessageRole(str, Enum):
    """Author of a history entry."""

    HUMAN = "human"
    ASSISTANT = "assistant"


class ConversationMessage(BaseModel):
    """One history entry."""

    role: MessageRole = Field(description="Message author")
    content: str = Field(description="Message text")


class ReporterOption(BaseModel):
    """A reporter candidate offered in a numbered menu."""

    account_id: str = Field(description="Jira account ID")
    display_name: str = Field(description="Display name")


class SprintOption(BaseModel):
    """A sprint offered in a numbered menu."""

    id: int = Field(description="Sprint ID")
    name: str = Field(description="Sprint name")
    state: str = Field(default="unknown", description="Sprint state (active/future)")


class ResolvedReporter(BaseModel):
    """Reporter chosen for the ticket being created."""

    account_id: str
    display_name: str


class ResolvedSprint(BaseModel):
    """Sprint chosen for the ticket being created."""

    id: int
    name: str


class ConversationRecord(BaseModel):
    """
    State of one Slack thread conversation.

    Timestamps are aware UTC datetimes in memory and epoch milliseconds on disk.
    """

    thread_ts: str = Field(description="Thread timestamp (primary key)")
    channel_id: str = Field(description="Channel the thread lives in")
    mode: ConversationMode = Field(description="Conversation mode")
    original_request: str = Field(description="Request that opened the thread")
    task_kind: Optional[TaskKind] = Field(default=None, description="Task kind once classified")
    affected_areas: List[str] = Field(default_factory=list, description="Codebase areas used for context")
    codebase_context: str = Field(default="", description="Context supplied to the completion service")
    history: List[ConversationMessage] = Field(default_factory=list, description="Human/assistant turns")
    stage: ConversationStage = Field(default=ConversationStage.QUESTIONING, description="Current stage")
    question_rounds: int = Field(default=0, ge=0, description="Assistant turns so far")
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    last_activity: datetime = Field(default_factory=utc_now, description="Last mutation time")
    generated_spec: Optional[str] = Field(default=None, description="Generated specification")
    ticket_key: Optional[str] = Field(default=None, description="Created Jira issue key")
    slack_user_id: Optional[str] = Field(default=None, description="User who opened the thread")
    resolved_reporter: Optional[ResolvedReporter] = Field(default=None, description="Resolved Jira reporter")
    resolved_sprint: Optional[ResolvedSprint] = Field(default=None, description="Resolved sprint")
    pending_reporter_options: Optional[List[ReporterOption]] = Field(default=None, description="Reporter menu on offer")
    pending_sprint_options: Optional[List[SprintOption]] = Field(default=None, description="Sprint menu on offer")

    @field_validator("created_at", "last_activity", mode="before")
    @classmethod
    def _parse_timestamp(cls, value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return from_epoch_ms(value)
            except (OverflowError, OSError) as e:
                raise ValueError(f"timestamp out of range: {value}") from e
        return value

    @field_serializer("created_at", "last_activity")
    def _serialize_timestamp(self, value: datetime) -> int:
        return to_epoch_ms(value)

    @property
    def is_complete(self) -> bool:
        return self.stage.is_terminal


class ConversationSummary(BaseModel):
    """Response model for listing conversations."""

    thread_ts: str = Field(description="Thread timestamp")
    channel_id: str = Field(description="Channel ID")
    mode: ConversationMode = Field(description="Conversation mode")
    stage: ConversationStage = Field(description="Current stage")
    question_rounds: int = Field(description="Assistant turns so far")
    history_length: int = Field(description="Number of history entries")
    ticket_key: Optional[str] = Field(None, description="Created Jira issue key")
    last_activity: datetime = Field(description="Last mutation time")


class ConversationListResponse(BaseModel):
    """Response model for the conversation list endpoint."""

    conversations: List[ConversationSummary] = Field(description="Live conversations")
    total: int = Field(description="Total number of conversations")


class CleanupResponse(BaseModel):
    """Response model for a manual retention sweep."""

    removed: int = Field(description="Number of expired conversations removed")
    remaining: int = Field(description="Number of conversations left")
