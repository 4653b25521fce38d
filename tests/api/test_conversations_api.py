"""Conversation inspection API tests."""

from httpx import AsyncClient

from taskbot.api.v1 import conversations
from taskbot.models.conversation import ConversationMode, TaskKind, to_epoch_ms


def _create(store, thread_ts, mode=ConversationMode.TASK):
    return store.create(thread_ts, "C123", mode, "Add a mood filter", TaskKind.FEATURE, ["playlist"], "ctx", "U1")


class TestConversationAPI:
    """SUT: /api/v1/conversations."""

    async def test_list_empty(self, client: AsyncClient):
        response = await client.get("/api/v1/conversations")
        assert response.status_code == 200
        assert response.json() == {"conversations": [], "total": 0}

    async def test_list_most_recent_first(self, client: AsyncClient, store, clock):
        _create(store, "1.1")
        clock.advance(minutes=5)
        _create(store, "2.2", mode=ConversationMode.QUESTION)
        store.append_assistant("2.2", "answer")

        response = await client.get("/api/v1/conversations")
        data = response.json()

        assert data["total"] == 2
        assert [c["thread_ts"] for c in data["conversations"]] == ["2.2", "1.1"]
        first = data["conversations"][0]
        assert first["mode"] == "question"
        assert first["stage"] == "questioning"
        assert first["history_length"] == 1
        assert first["question_rounds"] == 1

    async def test_get_conversation(self, client: AsyncClient, store, clock):
        _create(store, "1.1")
        store.set_awaiting_decision("1.1", "the spec")

        response = await client.get("/api/v1/conversations/1.1")
        assert response.status_code == 200
        data = response.json()
        assert data["stage"] == "awaiting_decision"
        assert data["generated_spec"] == "the spec"
        assert data["task_kind"] == "feature"
        assert data["last_activity"] == to_epoch_ms(clock())

    async def test_get_missing(self, client: AsyncClient):
        response = await client.get("/api/v1/conversations/9.9")
        assert response.status_code == 404

    async def test_cleanup(self, client: AsyncClient, store, clock):
        _create(store, "1.1")
        clock.advance(hours=30)
        _create(store, "2.2")

        response = await client.post("/api/v1/conversations/cleanup")
        assert response.status_code == 200
        assert response.json() == {"removed": 1, "remaining": 1}
        assert store.get("1.1") is None

    async def test_store_not_initialized(self, client: AsyncClient):
        conversations.store = None
        response = await client.get("/api/v1/conversations")
        assert response.status_code == 500


class TestHealth:
    """SUT: /health."""

    async def test_health(self, client: AsyncClient, store):
        _create(store, "1.1")
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "Slack TaskBot", "conversations": 1}
