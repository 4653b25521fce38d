"""Pydantic models for conversation state and integrations."""

from .conversation import (
    ConversationMode,
    TaskKind,
    ConversationStage,
    MessageRole,
    ConversationMessage,
    ReporterOption,
    SprintOption,
    ResolvedReporter,
    ResolvedSprint,
    ConversationRecord,
    ConversationSummary,
    ConversationListResponse,
    CleanupResponse,
    utc_now,
)
from .integrations import (
    ClassificationResult,
    TranscriptMessage,
    SlackMessageEvent,
    TicketResult,
    OperationResult,
    SprintInfo,
    TicketUser,
)

__all__ = [
    "ConversationMode",
    "TaskKind",
    "ConversationStage",
    "MessageRole",
    "ConversationMessage",
    "ReporterOption",
    "SprintOption",
    "ResolvedReporter",
    "ResolvedSprint",
    "ConversationRecord",
    "ConversationSummary",
    "ConversationListResponse",
    "CleanupResponse",
    "utc_now",
    "ClassificationResult",
    "TranscriptMessage",
    "SlackMessageEvent",
    "TicketResult",
    "OperationResult",
    "SprintInfo",
    "TicketUser",
]
