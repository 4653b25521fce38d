"""Collaborator clients: Slack, Claude, Jira."""

from .base import (
    IntegrationError,
    ChatClientError,
    CompletionError,
    TicketingError,
    ChatClient,
    CompletionClient,
    TicketingClient,
)
from .slack import SlackClient
from .claude import ClaudeClient
from .jira import JiraClient

__all__ = [
    "IntegrationError",
    "ChatClientError",
    "CompletionError",
    "TicketingError",
    "ChatClient",
    "CompletionClient",
    "TicketingClient",
    "SlackClient",
    "ClaudeClient",
    "JiraClient",
]
