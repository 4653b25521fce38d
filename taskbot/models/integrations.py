"""Models exchanged with Slack, the completion service and Jira."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .conversation import TaskKind


class ClassificationResult(BaseModel):
    """Classification of a free-text request."""

    model_config = ConfigDict(populate_by_name=True)

    is_relevant: bool = Field(default=False, alias="isRelevant", description="Whether the request concerns the project")
    intent: str = Field(default="question", description="question or task")
    task_kind: Optional[TaskKind] = Field(default=None, alias="type", description="Task kind for task intents")
    affected_areas: List[str] = Field(default_factory=list, alias="affectedAreas", description="Affected codebase areas")
    summary: str = Field(default="", description="One-line summary")

    @field_validator("intent", mode="before")
    @classmethod
    def _normalize_intent(cls, value):
        return "task" if str(getattr(value, "value", value) or "").lower() == "task" else "question"

    @field_validator("task_kind", mode="before")
    @classmethod
    def _normalize_task_kind(cls, value):
        if not value:
            return None
        value = str(getattr(value, "value", value)).lower()
        return value if value in {kind.value for kind in TaskKind} else None

    @field_validator("affected_areas", mode="before")
    @classmethod
    def _normalize_areas(cls, value):
        if not value:
            return []
        return [str(area) for area in value if str(area).strip()]

    @property
    def is_task(self) -> bool:
        return self.intent == "task"


class TranscriptMessage(BaseModel):
    """A message in a fetched Slack thread transcript."""

    model_config = ConfigDict(extra="ignore")

    ts: str = Field(description="Message timestamp")
    text: str = Field(default="", description="Message text")
    user: Optional[str] = Field(default=None, description="Author user ID")
    bot_id: Optional[str] = Field(default=None, description="Bot ID when posted by an app")

    @field_validator("text", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""


class SlackMessageEvent(BaseModel):
    """Inbound Slack `message` / `app_mention` event payload."""

    model_config = ConfigDict(extra="ignore")

    type: str = Field(description="Event type")
    channel: str = Field(default="", description="Channel ID")
    user: Optional[str] = Field(default=None, description="Author user ID")
    text: str = Field(default="", description="Message text")
    ts: str = Field(default="", description="Message timestamp")
    thread_ts: Optional[str] = Field(default=None, description="Parent thread timestamp")
    bot_id: Optional[str] = Field(default=None, description="Bot ID when posted by an app")
    subtype: Optional[str] = Field(default=None, description="Message subtype (edits, joins, ...)")

    @field_validator("text", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""


class TicketResult(BaseModel):
    """Outcome of an issue creation call."""

    success: bool
    key: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    reporter_dropped: bool = False


class OperationResult(BaseModel):
    """Outcome of a fallible ticketing call without payload."""

    success: bool
    error: Optional[str] = None


class SprintInfo(BaseModel):
    """A sprint on the configured board."""

    id: int
    name: str
    state: str = "unknown"
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class TicketUser(BaseModel):
    """A Jira user."""

    account_id: str
    display_name: str = "Unknown"
    email_address: Optional[str] = None
    active: bool = True
