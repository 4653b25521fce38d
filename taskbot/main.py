"""FastAPI main application."""

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from . import __version__
from .api import slack
from .api.v1 import conversations
from .clients import ChatClientError, ClaudeClient, JiraClient, SlackClient
from .config import settings
from .handlers import MentionHandler, SlackEventDispatcher, ThreadHandler
from .services import (
    CodebaseContextBuilder,
    ConversationPersistence,
    ConversationStore,
    HistoryRecoveryService,
)
from .utils.logger import init_app_logger


# Initialize logger
logger = init_app_logger(settings)


async def run_cleanup_loop(store: ConversationStore, interval_seconds: float, retention: timedelta) -> None:
    """Periodically drop conversations past the retention window."""
    while True:
        await asyncio.sleep(interval_seconds)
        removed = store.cleanup_expired(retention)
        logger.debug(f"Retention sweep removed {removed} conversations, {len(store)} remaining")


def _mask(secret: str) -> str:
    if not secret:
        return "Not set"
    return secret[:8] + "..." + secret[-4:] if len(secret) > 12 else "***"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    # Startup
    logger.info("=" * 70)
    logger.info("Starting Slack TaskBot...")
    logger.info("=" * 70)

    logger.info("")
    logger.info("📡 Server Configuration:")
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Debug: {settings.debug}")
    logger.info(f"  Log Level: {settings.log_level}")
    logger.info(f"  Log File: {settings.log_file}")

    logger.info("")
    logger.info("💬 Conversation Configuration:")
    logger.info(f"  Retention: {settings.conversation_retention_hours}h")
    logger.info(f"  History Recovery: {settings.enable_history_recovery} (max {settings.recovery_max_messages} messages)")
    logger.info(f"  Max Question Rounds: {settings.max_question_rounds}")
    logger.info(f"  State File: {settings.state_file_path()}")

    logger.info("")
    logger.info("🔌 Integrations:")
    logger.info(f"  Slack Bot Token: {_mask(settings.slack_bot_token)}")
    logger.info(f"  Claude Model: {settings.claude_model}")
    logger.info(f"  Anthropic API Key: {_mask(settings.anthropic_api_key)}")
    logger.info(f"  Jira: {'configured' if settings.is_jira_configured() else 'not configured'}")
    logger.info(f"  Codebase Path: {settings.codebase_path}")

    slack_client = SlackClient(
        settings.slack_bot_token,
        api_base=settings.slack_api_base,
        timeout_sec=settings.request_timeout_seconds,
    )
    claude_client = ClaudeClient(
        settings.anthropic_api_key,
        settings.claude_model,
        api_base=settings.anthropic_api_base,
        timeout_sec=settings.request_timeout_seconds,
    )
    jira_client = JiraClient(
        settings.jira_url,
        settings.jira_email,
        settings.jira_api_token,
        settings.jira_project_key,
        default_assignee_id=settings.jira_default_assignee_id,
        board_id=settings.jira_board_id,
        timeout_sec=settings.request_timeout_seconds,
    )

    # Restore conversations persisted by the previous process
    logger.info("")
    logger.info("💾 Loading conversation state...")
    persistence = ConversationPersistence(
        settings.state_file_path(),
        debounce_seconds=settings.save_debounce_seconds,
    )
    store = ConversationStore(persistence, max_question_rounds=settings.max_question_rounds)
    restored = await store.load(settings.retention_window())
    logger.info(f"  Restored {restored} conversations")

    context_builder = CodebaseContextBuilder(settings.codebase_path)
    await context_builder.get_index()

    bot_user_id = settings.slack_bot_user_id
    if not bot_user_id:
        try:
            bot_user_id = await slack_client.auth_test()
            logger.info(f"  Bot User ID (auth.test): {bot_user_id}")
        except ChatClientError as e:
            logger.warning(f"Could not resolve bot user ID, bot turns will be told apart by bot_id only: {e}")

    recovery = HistoryRecoveryService(
        slack_client,
        settings.conversation_retention_hours,
        enabled=settings.enable_history_recovery,
        max_messages=settings.recovery_max_messages,
    )
    mention_handler = MentionHandler(store, slack_client, claude_client, context_builder)
    thread_handler = ThreadHandler(
        store,
        slack_client,
        claude_client,
        jira_client,
        context_builder,
        recovery,
        retention_hours=settings.conversation_retention_hours,
    )

    # Set dependencies in API modules
    slack.dispatcher = SlackEventDispatcher(mention_handler, thread_handler, bot_user_id=bot_user_id)
    slack.mention_handler = mention_handler
    slack.signing_secret = settings.slack_signing_secret
    conversations.store = store

    cleanup_task = asyncio.create_task(
        run_cleanup_loop(store, settings.cleanup_interval_seconds, settings.retention_window())
    )

    logger.info("")
    logger.info("=" * 70)
    logger.info("✅ Slack TaskBot started successfully!")
    logger.info(f"📍 Events URL: http://{settings.host}:{settings.port}/slack/events")
    logger.info("=" * 70)

    yield

    # Shutdown
    logger.info("")
    logger.info("=" * 70)
    logger.info("Shutting down Slack TaskBot...")
    logger.info("=" * 70)

    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass

    await store.shutdown()
    await slack_client.close()
    await claude_client.close()
    await jira_client.close()

    logger.info("✅ Slack TaskBot shut down successfully")


# Create FastAPI application
app = FastAPI(
    title="Slack TaskBot",
    description="Turns Slack requests into task specifications and Jira tickets",
    version=__version__,
    lifespan=lifespan
)

# Include API routers
app.include_router(slack.router)
app.include_router(conversations.router)


@app.get("/health")
async def health():
    """
    Simple health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": "Slack TaskBot",
        "conversations": len(conversations.store) if conversations.store is not None else 0
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taskbot.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
