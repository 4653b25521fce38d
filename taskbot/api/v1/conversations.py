"""Conversation inspection API routes - V1."""

from fastapi import APIRouter, Depends, HTTPException

from ...config import settings
from ...models.conversation import (
    CleanupResponse,
    ConversationListResponse,
    ConversationRecord,
    ConversationSummary,
)
from ...services.conversation_store import ConversationStore

router = APIRouter(prefix="/api/v1/conversations", tags=["Conversations"])

# Conversation store (set by main.py)
store: ConversationStore = None


def get_store() -> ConversationStore:
    """Dependency to get the conversation store."""
    if store is None:
        raise HTTPException(status_code=500, detail="Conversation store not initialized")
    return store


def _to_summary(record: ConversationRecord) -> ConversationSummary:
    return ConversationSummary(
        thread_ts=record.thread_ts,
        channel_id=record.channel_id,
        mode=record.mode,
        stage=record.stage,
        question_rounds=record.question_rounds,
        history_length=len(record.history),
        ticket_key=record.ticket_key,
        last_activity=record.last_activity,
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(conv_store: ConversationStore = Depends(get_store)):
    """List live conversations, most recently active first."""
    conversations = conv_store.list_conversations()
    return ConversationListResponse(
        conversations=[_to_summary(c) for c in conversations],
        total=len(conversations)
    )


@router.get("/{thread_ts}", response_model=ConversationRecord)
async def get_conversation(thread_ts: str, conv_store: ConversationStore = Depends(get_store)):
    """Get the full state of one conversation."""
    record = conv_store.get(thread_ts)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Conversation not found: {thread_ts}")
    return record


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_conversations(conv_store: ConversationStore = Depends(get_store)):
    """Run the retention sweep now."""
    removed = conv_store.cleanup_expired(settings.retention_window())
    return CleanupResponse(removed=removed, remaining=len(conv_store))
