"""Anthropic Messages API client."""

import json
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..models.conversation import ConversationMessage, MessageRole
from ..models.integrations import ClassificationResult
from ..utils.logger import get_app_logger
from ..utils.prompts import (
    CLASSIFICATION_PROMPT,
    QUESTION_ANSWERING_PROMPT,
    QUESTION_FOLLOW_UP,
    QUESTION_GENERATION_PROMPT,
    SPEC_GENERATION_PROMPT,
    SPEC_GENERATION_REQUEST,
)
from .base import CompletionClient, CompletionError

ANTHROPIC_VERSION = "2023-06-01"
JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")


class ClaudeClient(CompletionClient):
    """Completion client backed by Claude."""

    def __init__(
        self,
        api_key: str,
        model: str,
        api_base: str = "https://api.anthropic.com",
        timeout_sec: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.model = model
        self.logger = get_app_logger("claude")
        self._client = httpx.AsyncClient(
            base_url=api_base.rstrip("/"),
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=timeout_sec,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def classify_request(self, text: str) -> ClassificationResult:
        """
        Classify a request. Output that does not contain a readable JSON object
        is treated as an irrelevant question.
        """
        reply = await self._complete(
            CLASSIFICATION_PROMPT,
            [{"role": "user", "content": text}],
            max_tokens=512,
        )

        match = JSON_OBJECT_PATTERN.search(reply)
        if not match:
            self.logger.warning("Classification reply contained no JSON object")
            return ClassificationResult()

        try:
            return ClassificationResult.model_validate(json.loads(match.group(0)))
        except (ValueError, ValidationError) as e:
            self.logger.warning(f"Unreadable classification reply: {e}")
            return ClassificationResult()

    async def generate_questions(
        self,
        request: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        messages = [{
            "role": "user",
            "content": f"Here is the relevant codebase context:\n\n{context}\n\nOriginal task request: \"{request}\"",
        }]
        messages.extend(_history_messages(history))
        if history:
            messages.append({"role": "user", "content": QUESTION_FOLLOW_UP})

        return await self._complete(QUESTION_GENERATION_PROMPT, messages, max_tokens=2048)

    async def generate_spec(
        self,
        request: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        messages = [{
            "role": "user",
            "content": f"Codebase context:\n\n{context}\n\nOriginal task request: \"{request}\"",
        }]
        messages.extend(_history_messages(history))
        messages.append({"role": "user", "content": SPEC_GENERATION_REQUEST})

        return await self._complete(SPEC_GENERATION_PROMPT, messages, max_tokens=4096)

    async def answer_question(
        self,
        question: str,
        context: str,
        history: Sequence[ConversationMessage]
    ) -> str:
        messages = [{
            "role": "user",
            "content": f"Here is the relevant codebase context:\n\n{context}\n\nQuestion: \"{question}\"",
        }]
        messages.extend(_history_messages(history))

        return await self._complete(QUESTION_ANSWERING_PROMPT, messages, max_tokens=3072)

    async def _complete(self, system: str, messages: List[Dict[str, str]], max_tokens: int) -> str:
        """
        Send one Messages API request and join the text blocks of the reply.

        Raises:
            CompletionError: On transport errors, HTTP errors or malformed replies
        """
        payload = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": _merge_consecutive(messages),
        }

        try:
            resp = await self._client.post("/v1/messages", json=payload)
        except httpx.HTTPError as exc:
            raise CompletionError(f"Completion request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise CompletionError(f"Completion service returned HTTP {resp.status_code}: {resp.text[:500]}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise CompletionError("Completion service returned invalid JSON") from exc

        content = body.get("content")
        if not isinstance(content, list):
            raise CompletionError("Completion reply has no content list")

        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type") == "text"
        )


def _history_messages(history: Sequence[ConversationMessage]) -> List[Dict[str, str]]:
    return [
        {
            "role": "assistant" if message.role == MessageRole.ASSISTANT else "user",
            "content": message.content,
        }
        for message in history
    ]


def _merge_consecutive(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # The Messages API expects alternating roles
    merged: List[Dict[str, Any]] = []
    for message in messages:
        if merged and merged[-1]["role"] == message["role"]:
            merged[-1] = {
                "role": message["role"],
                "content": f"{merged[-1]['content']}\n\n{message['content']}",
            }
        else:
            merged.append(dict(message))
    return merged
