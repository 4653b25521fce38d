"""Slack Events API and slash command endpoints."""

import json
from typing import Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request, Response
from slack_sdk.signature import Clock, SignatureVerifier

from ..handlers.dispatcher import SlackEventDispatcher
from ..handlers.mention import MentionHandler
from ..utils.logger import get_app_logger

router = APIRouter(prefix="/slack", tags=["Slack"])

# Event dispatcher (set by main.py)
dispatcher: SlackEventDispatcher = None
# Mention handler, used for slash commands (set by main.py)
mention_handler: MentionHandler = None
# Signing secret (set by main.py); requests are rejected while it is empty
signing_secret: str = ""


class FixedClock(Clock):
    def __init__(self, now: float):
        self._now = now

    def now(self) -> float:
        return self._now


def verify_signature(
    secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: bytes,
    now: Optional[float] = None
) -> bool:
    """
    Check a Slack v0 request signature and its five minute replay window.

    An empty signing secret never verifies.
    """
    if not secret or not timestamp or not signature:
        return False

    verifier = SignatureVerifier(secret) if now is None else SignatureVerifier(secret, clock=FixedClock(now))
    try:
        return verifier.is_valid(body=body, timestamp=timestamp, signature=signature)
    except ValueError:
        # Non-numeric timestamp, or a body that is not UTF-8
        return False


async def _verified_body(request: Request) -> bytes:
    body = await request.body()
    if not verify_signature(
        signing_secret,
        request.headers.get("X-Slack-Request-Timestamp"),
        request.headers.get("X-Slack-Signature"),
        body,
    ):
        get_app_logger().warning(f"Rejected Slack request with invalid signature on {request.url.path}")
        raise HTTPException(status_code=401, detail="Invalid request signature")
    return body


def get_dispatcher() -> SlackEventDispatcher:
    if dispatcher is None:
        raise HTTPException(status_code=500, detail="Event dispatcher not initialized")
    return dispatcher


def get_mention_handler() -> MentionHandler:
    if mention_handler is None:
        raise HTTPException(status_code=500, detail="Mention handler not initialized")
    return mention_handler


@router.post("/events")
async def slack_events(request: Request, background_tasks: BackgroundTasks):
    """
    Events API endpoint.

    Events are acknowledged immediately and handled in the background.
    Slack retries are acknowledged without handling, since the original
    delivery is already being processed.
    """
    body = await _verified_body(request)

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge", "")}

    if request.headers.get("X-Slack-Retry-Num"):
        get_app_logger().info(
            f"Ignoring Slack retry {request.headers.get('X-Slack-Retry-Num')} "
            f"({request.headers.get('X-Slack-Retry-Reason', 'unknown')})"
        )
        return Response(status_code=200)

    if payload.get("type") == "event_callback" and isinstance(payload.get("event"), dict):
        background_tasks.add_task(get_dispatcher().dispatch, payload["event"])

    return Response(status_code=200)


async def _run_command(handler: MentionHandler, command: str, channel_id: str, user_id: str, text: str) -> None:
    try:
        if command == "/help":
            await handler.handle_help_command(channel_id)
        else:
            await handler.handle_slash_command(channel_id, user_id, text)
    except Exception as e:
        get_app_logger().exception(f"Error handling {command} from {user_id}: {e}")


@router.post("/commands")
async def slack_commands(request: Request, background_tasks: BackgroundTasks):
    """Slash command endpoint (`/task`, `/help`)."""
    body = await _verified_body(request)
    form = {key: values[0] for key, values in parse_qs(body.decode("utf-8")).items()}

    command = form.get("command", "")
    if command not in ("/task", "/help"):
        raise HTTPException(status_code=400, detail=f"Unsupported command: {command}")

    background_tasks.add_task(
        _run_command,
        get_mention_handler(),
        command,
        form.get("channel_id", ""),
        form.get("user_id", ""),
        form.get("text", ""),
    )
    return Response(status_code=200)
