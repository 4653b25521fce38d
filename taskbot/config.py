"""Configuration management using pydantic-settings."""

from datetime import timedelta
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # Slack Configuration
    slack_bot_token: str = Field(default="", description="Slack bot token (xoxb-...)")
    slack_signing_secret: str = Field(default="", description="Slack request signing secret")
    slack_bot_user_id: str = Field(default="", description="Bot user ID; resolved via auth.test when empty")
    slack_api_base: str = Field(default="https://slack.com/api", description="Slack Web API base URL")

    # Anthropic Configuration
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    anthropic_api_base: str = Field(default="https://api.anthropic.com", description="Anthropic API base URL")
    claude_model: str = Field(default="claude-sonnet-4-20250514", description="Claude model")

    # Codebase Configuration
    codebase_path: str = Field(default="/app/strapi-repo", description="Project checkout used for context")

    # Jira Configuration
    jira_url: str = Field(default="", description="Jira site URL")
    jira_email: str = Field(default="", description="Jira account email")
    jira_api_token: str = Field(default="", description="Jira API token")
    jira_project_key: str = Field(default="", description="Jira project key")
    jira_default_assignee_id: str = Field(default="", description="Default assignee account ID")
    jira_board_id: str = Field(default="", description="Agile board ID for sprint assignment")

    # Conversation Configuration
    conversation_retention_hours: int = Field(default=24, description="Conversation retention window in hours")
    enable_history_recovery: bool = Field(default=True, description="Recover conversations from Slack threads")
    recovery_max_messages: int = Field(default=100, description="Maximum thread messages fetched for recovery")
    max_question_rounds: int = Field(default=5, description="Question rounds before suggesting a spec")
    cleanup_interval_seconds: int = Field(default=3600, description="Retention sweep interval in seconds")

    # Persistence Configuration
    persistence_dir: str = Field(default="./data", description="Directory holding the conversation snapshot")
    save_debounce_seconds: float = Field(default=2.0, description="Debounce delay for snapshot writes")

    # HTTP Configuration
    request_timeout_seconds: int = Field(default=60, description="Timeout for outbound API calls")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_file: str = Field(default="./logs/taskbot.log", description="Log file path")

    def retention_window(self) -> timedelta:
        """Get the retention window as a timedelta."""
        return timedelta(hours=self.conversation_retention_hours)

    def state_file_path(self) -> Path:
        """Get the path of the conversation snapshot file."""
        return Path(self.persistence_dir) / "conversations.json"

    def is_jira_configured(self) -> bool:
        """Check whether enough Jira settings are present to create tickets."""
        return bool(self.jira_url and self.jira_email and self.jira_api_token and self.jira_project_key)


# Global settings instance
settings = Settings()
