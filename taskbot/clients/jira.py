"""Jira Cloud REST / Agile API client."""

import re
from typing import Any, Dict, List, Optional

import httpx

from ..models.conversation import TaskKind
from ..models.integrations import OperationResult, SprintInfo, TicketResult, TicketUser
from ..utils.logger import get_app_logger
from .base import TicketingClient, TicketingError

SPEC_TITLE_PATTERN = re.compile(r"\*Task Specification:\s*(.+?)\*")
DEFAULT_SUMMARY = "Task from Slack"

ISSUE_TYPES = {
    TaskKind.FEATURE: "Story",
    TaskKind.FIX: "Bug",
    TaskKind.CHANGE: "Task",
}


def parse_spec_title(spec: str) -> str:
    """Issue summary: the `*Task Specification: ...*` title, else the first non-empty line."""
    match = SPEC_TITLE_PATTERN.search(spec)
    if match and match.group(1).strip():
        return match.group(1).strip()

    for line in spec.splitlines():
        if line.strip():
            return line.replace("*", "").strip() or DEFAULT_SUMMARY

    return DEFAULT_SUMMARY


def map_task_kind_to_issue_type(task_kind: Optional[TaskKind]) -> str:
    return ISSUE_TYPES.get(task_kind, "Task")


def text_to_adf(text: str) -> Dict[str, Any]:
    """
    Convert plain text to Atlassian Document Format.

    Blank lines separate paragraphs; single newlines become hard breaks,
    since ADF text nodes cannot contain newlines.
    """
    content = []
    for paragraph in re.split(r"\n{2,}", text):
        if not paragraph.strip():
            continue
        inline: List[Dict[str, Any]] = []
        for i, line in enumerate(paragraph.split("\n")):
            if i > 0:
                inline.append({"type": "hardBreak"})
            if line:
                inline.append({"type": "text", "text": line})
        content.append({"type": "paragraph", "content": inline})

    return {"type": "doc", "version": 1, "content": content}


def _error_message(resp: httpx.Response) -> str:
    """Pull a readable message out of a Jira error response."""
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}: {resp.text[:200]}"

    if not isinstance(body, dict):
        return f"HTTP {resp.status_code}"

    messages = body.get("errorMessages") or []
    if messages:
        return ", ".join(str(m) for m in messages)

    field_errors = body.get("errors") or {}
    if field_errors:
        return ", ".join(f"{field}: {message}" for field, message in field_errors.items())

    return f"HTTP {resp.status_code}"


def _to_user(raw: Dict[str, Any]) -> TicketUser:
    return TicketUser(
        account_id=raw["accountId"],
        display_name=raw.get("displayName") or "Unknown",
        email_address=raw.get("emailAddress"),
        active=bool(raw.get("active", False)),
    )


def _to_sprint(raw: Dict[str, Any], default_state: str) -> SprintInfo:
    return SprintInfo(
        id=raw["id"],
        name=raw["name"],
        state=raw.get("state") or default_state,
        start_date=raw.get("startDate"),
        end_date=raw.get("endDate"),
    )


class JiraClient(TicketingClient):
    """Ticketing client for Jira Cloud (basic auth with an API token)."""

    def __init__(
        self,
        url: str,
        email: str,
        api_token: str,
        project_key: str,
        default_assignee_id: str = "",
        board_id: str = "",
        timeout_sec: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url.rstrip("/")
        self.project_key = project_key
        self.default_assignee_id = default_assignee_id
        self.board_id = board_id
        self.logger = get_app_logger("jira")
        self._has_credentials = bool(self.url and email and api_token)
        self._client = httpx.AsyncClient(
            base_url=self.url or "http://localhost",
            auth=(email, api_token),
            headers={"Accept": "application/json"},
            timeout=timeout_sec,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def is_configured(self) -> bool:
        return self._has_credentials and bool(self.project_key)

    def has_board(self) -> bool:
        return self._has_credentials and bool(self.board_id)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Raises:
            TicketingError: On transport errors
        """
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TicketingError(f"Jira {method} {path} failed: {exc}") from exc

    async def create_issue(
        self,
        spec: str,
        task_kind: Optional[TaskKind],
        reporter_account_id: Optional[str] = None
    ) -> TicketResult:
        """
        Create an issue holding the specification.

        When Jira rejects the reporter field (the reporter cannot be set
        on some project schemes) the issue is created once more without it.
        """
        if not self.is_configured():
            return TicketResult(
                success=False,
                error="Jira is not configured. Please set JIRA_URL, JIRA_EMAIL, JIRA_API_TOKEN, and JIRA_PROJECT_KEY.",
            )

        fields: Dict[str, Any] = {
            "project": {"key": self.project_key},
            "summary": parse_spec_title(spec),
            "description": text_to_adf(spec),
            "issuetype": {"name": map_task_kind_to_issue_type(task_kind)},
        }
        if self.default_assignee_id:
            fields["assignee"] = {"id": self.default_assignee_id}
        if reporter_account_id:
            fields["reporter"] = {"id": reporter_account_id}

        try:
            resp = await self._request("POST", "/rest/api/3/issue", json={"fields": fields})
            reporter_dropped = False
            if resp.status_code == 400 and reporter_account_id and "reporter" in resp.text:
                self.logger.warning(f"Jira rejected reporter {reporter_account_id}, creating issue without it")
                fields.pop("reporter")
                resp = await self._request("POST", "/rest/api/3/issue", json={"fields": fields})
                reporter_dropped = True
        except TicketingError as e:
            self.logger.error(f"Failed to create Jira ticket: {e}")
            return TicketResult(success=False, error=str(e))

        if resp.status_code >= 400:
            error = _error_message(resp)
            self.logger.error(f"Failed to create Jira ticket: {error}")
            return TicketResult(success=False, error=error)

        try:
            key = resp.json().get("key")
        except (ValueError, AttributeError):
            self.logger.error(f"Unreadable Jira create response (HTTP {resp.status_code}): {resp.text[:200]}")
            return TicketResult(success=False, error="Jira returned an unreadable response")
        if not key:
            return TicketResult(success=False, error="Jira response did not include an issue key")

        self.logger.info(f"Created Jira issue {key}")
        return TicketResult(
            success=True,
            key=key,
            url=f"{self.url}/browse/{key}",
            reporter_dropped=reporter_dropped,
        )

    async def _board_sprints(self, state: str, max_results: Optional[int] = None) -> List[SprintInfo]:
        params: Dict[str, Any] = {"state": state}
        if max_results is not None:
            params["maxResults"] = max_results

        resp = await self._request("GET", f"/rest/agile/1.0/board/{self.board_id}/sprint", params=params)
        if resp.status_code >= 400:
            raise TicketingError(_error_message(resp))

        default_state = "active" if state == "active" else "unknown"
        return [_to_sprint(raw, default_state) for raw in resp.json().get("values") or []]

    async def get_active_sprint(self) -> Optional[SprintInfo]:
        if not self.has_board():
            return None

        try:
            sprints = await self._board_sprints("active")
        except (TicketingError, KeyError, ValueError) as e:
            self.logger.error(f"Failed to get active sprint: {e}")
            return None
        return sprints[0] if sprints else None

    async def list_recent_sprints(self) -> List[SprintInfo]:
        """Active and future sprints, for the sprint menu."""
        if not self.has_board():
            return []

        try:
            return await self._board_sprints("active,future", max_results=10)
        except (TicketingError, KeyError, ValueError) as e:
            self.logger.error(f"Failed to get recent sprints: {e}")
            return []

    async def move_issue_to_sprint(self, issue_key: str, sprint_id: int) -> OperationResult:
        if not self._has_credentials:
            return OperationResult(success=False, error="Agile client not configured")

        try:
            resp = await self._request(
                "POST",
                f"/rest/agile/1.0/sprint/{sprint_id}/issue",
                json={"issues": [issue_key]},
            )
        except TicketingError as e:
            self.logger.error(f"Failed to move {issue_key} to sprint {sprint_id}: {e}")
            return OperationResult(success=False, error=str(e))

        if resp.status_code >= 400:
            error = _error_message(resp)
            self.logger.error(f"Failed to move {issue_key} to sprint {sprint_id}: {error}")
            return OperationResult(success=False, error=error)
        return OperationResult(success=True)

    async def find_user_by_email(self, email: str) -> Optional[TicketUser]:
        """First active user whose email matches exactly (case-insensitive)."""
        if not self._has_credentials:
            return None

        try:
            resp = await self._request(
                "GET", "/rest/api/3/user/search", params={"query": email, "maxResults": 5}
            )
            if resp.status_code >= 400:
                raise TicketingError(_error_message(resp))
            users = [_to_user(raw) for raw in resp.json()]
        except (TicketingError, KeyError, ValueError) as e:
            self.logger.error(f"Failed to find Jira user by email: {e}")
            return None

        wanted = email.lower()
        for user in users:
            if user.active and (user.email_address or "").lower() == wanted:
                return user
        return None

    async def list_assignable_users(self) -> List[TicketUser]:
        """Active users assignable in the project, the fallback reporter menu."""
        if not self.is_configured():
            return []

        try:
            resp = await self._request(
                "GET",
                "/rest/api/3/user/assignable/search",
                params={"project": self.project_key, "maxResults": 20},
            )
            if resp.status_code >= 400:
                raise TicketingError(_error_message(resp))
            users = [_to_user(raw) for raw in resp.json()]
        except (TicketingError, KeyError, ValueError) as e:
            self.logger.error(f"Failed to get assignable users: {e}")
            return []

        return [user for user in users if user.active]
