"""Services package."""

from .persistence import ConversationPersistence, LoadedState
from .conversation_store import ConversationStore
from .history_recovery import HistoryRecoveryService, RecoveredConversation
from .context_builder import CodebaseContextBuilder

__all__ = [
    "ConversationPersistence",
    "LoadedState",
    "ConversationStore",
    "HistoryRecoveryService",
    "RecoveredConversation",
    "CodebaseContextBuilder",
]
