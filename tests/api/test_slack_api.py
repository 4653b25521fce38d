"""Slack endpoint integration tests."""

import json
import time
from urllib.parse import urlencode

from httpx import AsyncClient
from slack_sdk.signature import SignatureVerifier

from taskbot.api import slack

SIGNING_SECRET = "test-signing-secret"


def sign(secret: str, timestamp: str, body: bytes) -> str:
    return SignatureVerifier(secret).generate_signature(timestamp=timestamp, body=body)


def signed_headers(body: bytes, secret: str = SIGNING_SECRET, timestamp=None) -> dict:
    timestamp = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "X-Slack-Request-Timestamp": timestamp,
        "X-Slack-Signature": sign(secret, timestamp, body),
    }


def json_body(payload) -> bytes:
    return json.dumps(payload).encode()


def form_body(fields) -> bytes:
    return urlencode(fields).encode()


class TestSignatureVerification:
    """SUT: verify_signature."""

    def test_valid(self):
        body = b'{"type":"event_callback"}'
        signature = sign("secret", "1700000000", body)
        assert slack.verify_signature("secret", "1700000000", signature, body, now=1700000010)

    def test_tampered_body(self):
        signature = sign("secret", "1700000000", b"a")
        assert not slack.verify_signature("secret", "1700000000", signature, b"b", now=1700000000)

    def test_stale_timestamp(self):
        signature = sign("secret", "1700000000", b"a")
        assert not slack.verify_signature("secret", "1700000000", signature, b"a", now=1700000000 + 301)

    def test_empty_secret_rejects(self):
        signature = sign("", "1700000000", b"a")
        assert not slack.verify_signature("", "1700000000", signature, b"a", now=1700000000)

    def test_non_numeric_timestamp(self):
        assert not slack.verify_signature("secret", "soon", "v0=abc", b"a")

    def test_missing_headers(self):
        assert not slack.verify_signature("secret", None, None, b"a")

    def test_current_time_used_by_default(self):
        timestamp = str(int(time.time()))
        assert slack.verify_signature("secret", timestamp, sign("secret", timestamp, b"a"), b"a")


class TestEvents:
    """SUT: POST /slack/events."""

    async def test_unsigned_request_rejected(self, client: AsyncClient, dispatcher):
        body = json_body({"type": "event_callback", "event": {"type": "message"}})
        response = await client.post("/slack/events", content=body)
        assert response.status_code == 401
        assert dispatcher.events == []

    async def test_wrong_secret_rejected(self, client: AsyncClient):
        body = json_body({"type": "url_verification", "challenge": "abc"})
        response = await client.post("/slack/events", content=body, headers=signed_headers(body, secret="other"))
        assert response.status_code == 401

    async def test_old_timestamp_rejected(self, client: AsyncClient):
        body = json_body({"type": "url_verification", "challenge": "abc"})
        headers = signed_headers(body, timestamp=int(time.time()) - 3600)
        response = await client.post("/slack/events", content=body, headers=headers)
        assert response.status_code == 401

    async def test_url_verification(self, client: AsyncClient):
        body = json_body({"type": "url_verification", "challenge": "abc123"})
        response = await client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 200
        assert response.json() == {"challenge": "abc123"}

    async def test_event_dispatched(self, client: AsyncClient, dispatcher):
        event = {"type": "message", "channel": "C123", "text": "hi", "ts": "2.0", "thread_ts": "1.0"}
        body = json_body({"type": "event_callback", "event": event})
        response = await client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 200
        assert dispatcher.events == [event]

    async def test_retry_acknowledged_without_dispatch(self, client: AsyncClient, dispatcher):
        body = json_body({"type": "event_callback", "event": {"type": "message"}})
        headers = signed_headers(body)
        headers.update({"X-Slack-Retry-Num": "1", "X-Slack-Retry-Reason": "http_timeout"})
        response = await client.post("/slack/events", content=body, headers=headers)
        assert response.status_code == 200
        assert dispatcher.events == []

    async def test_invalid_json(self, client: AsyncClient):
        body = b"not json"
        response = await client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 400

    async def test_dispatcher_not_initialized(self, client: AsyncClient):
        slack.dispatcher = None
        body = json_body({"type": "event_callback", "event": {"type": "message"}})
        response = await client.post("/slack/events", content=body, headers=signed_headers(body))
        assert response.status_code == 500


class TestCommands:
    """SUT: POST /slack/commands."""

    async def test_task_command(self, client: AsyncClient, commands):
        body = form_body({"command": "/task", "channel_id": "C123", "user_id": "U1", "text": "add a mood filter"})
        response = await client.post("/slack/commands", content=body, headers=signed_headers(body))
        assert response.status_code == 200
        assert commands.calls == [("task", "C123", "U1", "add a mood filter")]

    async def test_help_command(self, client: AsyncClient, commands):
        body = form_body({"command": "/help", "channel_id": "C123", "user_id": "U1"})
        response = await client.post("/slack/commands", content=body, headers=signed_headers(body))
        assert response.status_code == 200
        assert commands.calls == [("help", "C123")]

    async def test_unknown_command(self, client: AsyncClient, commands):
        body = form_body({"command": "/deploy", "channel_id": "C123"})
        response = await client.post("/slack/commands", content=body, headers=signed_headers(body))
        assert response.status_code == 400
        assert commands.calls == []

    async def test_unsigned_command_rejected(self, client: AsyncClient, commands):
        body = form_body({"command": "/task", "text": "x"})
        response = await client.post("/slack/commands", content=body)
        assert response.status_code == 401
        assert commands.calls == []
