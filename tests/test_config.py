"""Tests for settings."""

from datetime import timedelta
from pathlib import Path

from taskbot.config import Settings


class TestSettings:
    """SUT: Settings."""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CONVERSATION_RETENTION_HOURS", "48")
        monkeypatch.setenv("PERSISTENCE_DIR", "/var/lib/taskbot")
        monkeypatch.setenv("JIRA_BOARD_ID", "5")

        settings = Settings(_env_file=None)

        assert settings.retention_window() == timedelta(hours=48)
        assert settings.state_file_path() == Path("/var/lib/taskbot/conversations.json")
        assert settings.jira_board_id == "5"

    def test_jira_configured_needs_all_fields(self, monkeypatch):
        monkeypatch.setenv("JIRA_URL", "https://jira.test")
        monkeypatch.setenv("JIRA_EMAIL", "bot@example.com")
        monkeypatch.setenv("JIRA_API_TOKEN", "token")
        assert not Settings(_env_file=None).is_jira_configured()

        monkeypatch.setenv("JIRA_PROJECT_KEY", "PROJ")
        assert Settings(_env_file=None).is_jira_configured()
