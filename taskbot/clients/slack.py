"""Slack Web API client."""

from typing import Any, Dict, List, Optional

import httpx

from ..models.integrations import TranscriptMessage
from ..utils.logger import get_app_logger
from .base import ChatClient, ChatClientError


class SlackClient(ChatClient):
    """Minimal async Slack Web API client (bot token auth)."""

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://slack.com/api",
        timeout_sec: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_base = api_base.rstrip("/")
        self.logger = get_app_logger("slack")
        self._client = httpx.AsyncClient(
            base_url=self.api_base,
            headers={"Authorization": f"Bearer {bot_token}"},
            timeout=timeout_sec,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, http_method: str = "POST", **params: Any) -> Dict[str, Any]:
        """
        Call a Web API method and unwrap the `ok` envelope.

        Raises:
            ChatClientError: On transport errors, HTTP errors or `ok: false`
        """
        try:
            if http_method == "GET":
                resp = await self._client.get(f"/{method}", params=params)
            else:
                resp = await self._client.post(f"/{method}", json=params)
        except httpx.HTTPError as exc:
            raise ChatClientError(f"Slack {method} request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise ChatClientError(f"Slack {method} returned HTTP {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise ChatClientError(f"Slack {method} returned invalid JSON") from exc

        if not body.get("ok"):
            raise ChatClientError(f"Slack {method} failed: {body.get('error', 'unknown_error')}")
        return body

    async def auth_test(self) -> str:
        """Return the bot's own user ID."""
        body = await self._call("auth.test")
        return body.get("user_id", "")

    async def fetch_thread_replies(self, channel_id: str, thread_ts: str, limit: int = 100) -> List[TranscriptMessage]:
        body = await self._call(
            "conversations.replies",
            http_method="GET",
            channel=channel_id,
            ts=thread_ts,
            limit=limit,
        )
        messages = body.get("messages") or []
        return [TranscriptMessage.model_validate(m) for m in messages if m.get("ts")]

    async def post_message(self, channel_id: str, text: str, thread_ts: Optional[str] = None) -> Optional[str]:
        params: Dict[str, Any] = {"channel": channel_id, "text": text}
        if thread_ts:
            params["thread_ts"] = thread_ts

        try:
            body = await self._call("chat.postMessage", **params)
        except ChatClientError as e:
            self.logger.error(f"Failed to post message to {channel_id} (thread {thread_ts}): {e}")
            return None
        return body.get("ts")

    async def get_user_email(self, user_id: str) -> Optional[str]:
        try:
            body = await self._call("users.info", http_method="GET", user=user_id)
        except ChatClientError as e:
            self.logger.warning(f"Failed to look up Slack user {user_id}: {e}")
            return None
        return ((body.get("user") or {}).get("profile") or {}).get("email")
