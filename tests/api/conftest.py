"""Pytest fixtures for API testing."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from taskbot.api import slack
from taskbot.api.v1 import conversations
from taskbot.main import health


class RecordingDispatcher:
    def __init__(self):
        self.events = []

    async def dispatch(self, event):
        self.events.append(event)


class RecordingCommands:
    def __init__(self):
        self.calls = []

    async def handle_slash_command(self, channel_id, user_id, text):
        self.calls.append(("task", channel_id, user_id, text))

    async def handle_help_command(self, channel_id):
        self.calls.append(("help", channel_id))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def commands():
    return RecordingCommands()


@pytest.fixture
async def client(store, dispatcher, commands):
    """Create async HTTP client against a test app with injected dependencies."""
    # Inject dependencies into routers
    slack.dispatcher = dispatcher
    slack.mention_handler = commands
    slack.signing_secret = "test-signing-secret"
    conversations.store = store

    # Create a test app without lifespan (to avoid starting the real clients)
    test_app = FastAPI(title="Slack TaskBot Test")
    test_app.include_router(slack.router)
    test_app.include_router(conversations.router)
    test_app.add_api_route("/health", health, methods=["GET"])

    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    slack.dispatcher = None
    slack.mention_handler = None
    slack.signing_secret = ""
    conversations.store = None
