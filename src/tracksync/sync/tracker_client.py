"""Jira REST API v3 client for project and issue synchronization.

This module provides an async HTTP client for the tracker operations the
sync engine needs: projects, issues, statuses, issue types, priorities,
issue creation/update and workflow transitions. Uses JIRA_EMAIL and
JIRA_API_TOKEN environment variables when credentials are not passed.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any

import httpx

from tracksync.errors import (
    TrackerApiError,
    TrackerAuthError,
    TrackerConnectionError,
    TrackerErrorCode,
    TrackerNotFoundError,
    TrackerRateLimitError,
)

logger = logging.getLogger(__name__)

# Jira API constants
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 3
INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_RESULTS = 100
API_PATH = "/rest/api/3"


@dataclass
class TrackerUser:
    """The account the client is authenticated as."""

    account_id: str | None
    display_name: str = ""
    email: str | None = None


@dataclass
class TrackerIssueType:
    """An issue type available in a tracker project."""

    id: str
    name: str
    subtask: bool = False


@dataclass
class TrackerPriority:
    """A tracker priority level."""

    id: str
    name: str


@dataclass
class TrackerProject:
    """Represents a Jira project."""

    id: str
    key: str  # e.g., "PROJ"
    name: str
    description: str | None = None
    lead: str | None = None  # Lead display name
    url: str | None = None
    issue_types: list[TrackerIssueType] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TrackerProject:
        lead = data.get("lead") or {}
        return cls(
            id=str(data["id"]),
            key=data["key"],
            name=data.get("name", data["key"]),
            description=data.get("description"),
            lead=lead.get("displayName"),
            url=data.get("url") or data.get("self"),
            issue_types=[
                TrackerIssueType(id=str(t.get("id", "")), name=t.get("name", ""), subtask=bool(t.get("subtask")))
                for t in data.get("issueTypes") or []
            ],
        )


@dataclass
class TrackerStatus:
    """A workflow status of a tracker project."""

    id: str
    name: str
    category_key: str | None = None
    color_name: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TrackerStatus:
        category = data.get("statusCategory") or {}
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            category_key=category.get("key"),
            color_name=category.get("colorName"),
        )


@dataclass
class TrackerIssue:
    """Represents a Jira issue as returned by search or issue lookup."""

    id: str
    key: str  # e.g., "PROJ-123"
    summary: str
    description: Any = None  # Rich document (ADF), string or None
    status_id: str | None = None
    status_name: str | None = None
    priority: str | None = None
    assignee: str | None = None
    issue_type: str | None = None
    project_key: str | None = None
    parent_id: str | None = None
    due_date: str | None = None
    created: str | None = None
    updated: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> TrackerIssue:
        fields = data.get("fields") or {}
        status = fields.get("status") or {}
        priority = fields.get("priority") or {}
        assignee = fields.get("assignee") or {}
        issue_type = fields.get("issuetype") or {}
        project = fields.get("project") or {}
        parent = fields.get("parent") or {}
        key = data["key"]
        return cls(
            id=str(data["id"]),
            key=key,
            summary=fields.get("summary") or "",
            description=fields.get("description"),
            status_id=str(status["id"]) if status.get("id") is not None else None,
            status_name=status.get("name"),
            priority=priority.get("name"),
            assignee=assignee.get("displayName"),
            issue_type=issue_type.get("name"),
            project_key=project.get("key") or key.rsplit("-", 1)[0],
            parent_id=str(parent["id"]) if parent.get("id") is not None else None,
            due_date=fields.get("duedate"),
            created=fields.get("created"),
            updated=fields.get("updated"),
        )


@dataclass
class TrackerIssueRef:
    """Identity of a freshly created issue."""

    id: str
    key: str
    url: str | None = None


@dataclass
class TrackerTransition:
    """Represents an available Jira workflow transition."""

    id: str  # Transition ID (used for API calls)
    name: str  # Transition name (user-facing)
    to_status_id: str | None = None
    to_status: str = ""  # Target status name after transition


def classify_error(status_code: int, body: str) -> TrackerErrorCode:
    """Derive a structured error code from a tracker error response.

    Args:
        status_code: HTTP status code of the response.
        body: Raw response body (usually JSON with errorMessages/errors).

    Returns:
        The matching TrackerErrorCode, UNKNOWN when nothing matches.
    """
    if status_code == 401:
        return TrackerErrorCode.UNAUTHORIZED
    if status_code == 404:
        return TrackerErrorCode.NOT_FOUND
    if status_code == 429:
        return TrackerErrorCode.RATE_LIMITED

    text = _error_detail(body).lower()
    if "projectlead" in text or "leadaccountid" in text or "project lead" in text:
        return TrackerErrorCode.INVALID_LEAD
    if "uses this project key" in text or ("projectkey" in text and "exist" in text):
        return TrackerErrorCode.KEY_CONFLICT
    if status_code == 403 or "permission" in text:
        return TrackerErrorCode.PERMISSION_DENIED
    return TrackerErrorCode.UNKNOWN


def _error_detail(body: str) -> str:
    """Flatten a Jira error body into one line of text.

    Field errors are rendered as ``field: message`` so the field name is
    preserved for classification.
    """
    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return body or ""
    if not isinstance(data, dict):
        return body

    parts = [str(m) for m in data.get("errorMessages") or []]
    errors = data.get("errors") or {}
    if isinstance(errors, dict):
        parts.extend(f"{k}: {v}" for k, v in errors.items())
    return "; ".join(parts) or body


def _normalize_domain(domain: str) -> str:
    domain = domain.strip().rstrip("/")
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix) :]
    return domain


class TrackerClient:
    """Async Jira REST API v3 client.

    Uses HTTP Basic auth built from the account email and API token.
    Implements rate limit detection and retry logic with exponential backoff
    for transient failures (429, timeouts, transport errors).
    """

    def __init__(
        self,
        domain: str,
        email: str | None = None,
        api_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        max_results: int = DEFAULT_MAX_RESULTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the tracker client.

        Args:
            domain: Jira site domain (e.g., company.atlassian.net).
            email: User email. If None, reads from JIRA_EMAIL env var.
            api_token: API token. If None, reads from JIRA_API_TOKEN env var.
            timeout: Request timeout in seconds.
            max_retries: Attempts per request for transient failures.
            max_results: Default cap for issue searches.
            transport: Optional httpx transport (used by tests).

        Raises:
            TrackerAuthError: If no token/email is provided or found in environment.
        """
        self.domain = _normalize_domain(domain)
        self.base_url = f"https://{self.domain}{API_PATH}"
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.max_results = max_results
        self._transport = transport

        self._email = email or os.getenv("JIRA_EMAIL")
        self._token = api_token or os.getenv("JIRA_API_TOKEN")

        if not self._token:
            raise TrackerAuthError(
                "No Jira API token provided. Set JIRA_API_TOKEN environment variable or pass api_token parameter.",
                status_code=401,
                code=TrackerErrorCode.UNAUTHORIZED,
            )
        if not self._email:
            raise TrackerAuthError(
                "No Jira email provided. Set JIRA_EMAIL environment variable or pass email parameter.",
                status_code=401,
                code=TrackerErrorCode.UNAUTHORIZED,
            )

        # Build Basic Auth header (email:token base64 encoded) - never log!
        credentials = f"{self._email}:{self._token}"
        encoded = base64.b64encode(credentials.encode()).decode()
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "Authorization": f"Basic {encoded}",
        }

        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> TrackerClient:
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the HTTP client, ensuring it's initialized."""
        if self._client is None:
            raise RuntimeError("TrackerClient must be used as async context manager")
        return self._client

    async def _request(
        self,
        method: str,
        endpoint: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.).
            endpoint: API endpoint relative to /rest/api/3 (e.g., "/issue/PROJ-123").
            **kwargs: Additional arguments passed to httpx request.

        Returns:
            httpx.Response object.

        Raises:
            TrackerAuthError: If authentication or authorization fails.
            TrackerRateLimitError: If rate limit is exceeded after retries.
            TrackerNotFoundError: If resource is not found.
            TrackerApiError: For other non-2xx responses.
            TrackerConnectionError: On timeouts or transport failures after retries.
        """
        backoff = INITIAL_BACKOFF

        for attempt in range(self.max_retries):
            try:
                response = await self.client.request(method, endpoint, **kwargs)
            except httpx.TimeoutException as e:
                if attempt < self.max_retries - 1:
                    wait_time = backoff * (2**attempt)
                    logger.warning(f"Request timeout, retrying in {wait_time:.1f}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise TrackerConnectionError(f"Request timeout after {self.max_retries} attempts") from e
            except httpx.HTTPError as e:
                if attempt < self.max_retries - 1:
                    wait_time = backoff * (2**attempt)
                    logger.warning(f"HTTP error: {e}, retrying in {wait_time:.1f}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise TrackerConnectionError(f"HTTP error after {self.max_retries} attempts: {e}") from e

            # Handle rate limiting (429)
            if response.status_code == 429:
                retry_after = _retry_after(response)
                if attempt < self.max_retries - 1:
                    wait_time = min(retry_after, 60)
                    logger.warning(f"Rate limit hit, waiting {wait_time}s (attempt {attempt + 1}/{self.max_retries})")
                    await asyncio.sleep(wait_time)
                    continue
                raise TrackerRateLimitError(
                    f"Jira API rate limit exceeded. Retry after {retry_after}s",
                    retry_after=retry_after,
                    body=response.text,
                )

            if response.status_code >= 400:
                raise self._error_for(response, endpoint)

            return response

        # Should not reach here, but just in case
        raise TrackerConnectionError("Max retries exceeded")

    def _error_for(self, response: httpx.Response, endpoint: str) -> TrackerApiError:
        status = response.status_code
        body = response.text
        code = classify_error(status, body)

        if status == 401:
            return TrackerAuthError("Jira authentication failed. Check your email and API token.", status, body, code)
        if status == 403:
            return TrackerAuthError(f"Jira access forbidden: {_error_detail(body)[:200]}", status, body, code)
        if status == 404:
            return TrackerNotFoundError(f"Resource not found: {endpoint}", status, body, code)

        logger.error(f"Jira API error {status}: {body}")
        return TrackerApiError(f"Jira API error {status}: {_error_detail(body)[:200]}", status, body, code)

    # =========================================================================
    # Account Operations
    # =========================================================================

    async def get_current_user(self) -> TrackerUser:
        """Get the account the client is authenticated as."""
        response = await self._request("GET", "/myself")
        data = response.json()
        return TrackerUser(
            account_id=data.get("accountId"),
            display_name=data.get("displayName", ""),
            email=data.get("emailAddress"),
        )

    async def test_connection(self) -> bool:
        """Check that the credentials are accepted by the tracker.

        Returns:
            True if the tracker answered, False on any tracker error.
        """
        try:
            await self.get_current_user()
        except (TrackerApiError, TrackerConnectionError) as e:
            logger.warning(f"Jira connection test failed for {self.domain}: {e}")
            return False
        return True

    # =========================================================================
    # Project Operations
    # =========================================================================

    async def get_projects(self) -> list[TrackerProject]:
        """List the projects visible to the account.

        Accepts both the plain list and the paginated ``values`` shapes.
        """
        response = await self._request("GET", "/project")
        data = response.json()

        if isinstance(data, list):
            items = data
        elif isinstance(data, dict) and isinstance(data.get("values"), list):
            items = data["values"]
        elif isinstance(data, dict) and isinstance(data.get("projects"), list):
            items = data["projects"]
        else:
            logger.error(f"Unexpected Jira projects response format: {type(data).__name__}")
            items = []

        return [TrackerProject.from_api(p) for p in items]

    async def get_project(self, project_key: str) -> TrackerProject:
        """Get a project, including its issue types."""
        response = await self._request("GET", f"/project/{project_key}")
        return TrackerProject.from_api(response.json())

    async def create_project(
        self,
        key: str,
        name: str,
        lead_account_id: str,
        description: str = "",
        project_type_key: str = "software",
    ) -> TrackerProject:
        """Create a tracker project.

        Args:
            key: Project key (e.g., "PROJ").
            name: Project display name.
            lead_account_id: Account id of the project lead.
            description: Project description.
            project_type_key: Jira project type.

        Returns:
            The created project.
        """
        payload = {
            "key": key,
            "name": name,
            "description": description,
            "projectTypeKey": project_type_key,
            "leadAccountId": lead_account_id,
        }
        response = await self._request("POST", "/project", json=payload)
        data = response.json()
        logger.info(f"Created Jira project {key}")
        return TrackerProject(
            id=str(data.get("id", "")),
            key=data.get("key", key),
            name=name,
            description=description,
            url=data.get("self"),
        )

    async def get_project_statuses(self, project_key: str) -> list[TrackerStatus]:
        """Get the statuses of a project.

        Flattens the per-issue-type status lists and de-duplicates by id,
        keeping first-seen order.
        """
        response = await self._request("GET", f"/project/{project_key}/statuses")
        data = response.json()

        statuses: dict[str, TrackerStatus] = {}
        for issue_type in data or []:
            for raw in issue_type.get("statuses") or []:
                status = TrackerStatus.from_api(raw)
                statuses.setdefault(status.id, status)
        return list(statuses.values())

    async def get_project_issue_types(self, project_key: str) -> list[TrackerIssueType]:
        """Get the issue types available in a project."""
        project = await self.get_project(project_key)
        return project.issue_types

    async def get_priorities(self) -> list[TrackerPriority]:
        """Get the priority levels configured on the site."""
        response = await self._request("GET", "/priority")
        return [TrackerPriority(id=str(p.get("id", "")), name=p.get("name", "")) for p in response.json() or []]

    # =========================================================================
    # Issue Operations
    # =========================================================================

    async def get_project_issues(self, project_key: str, max_results: int | None = None) -> list[TrackerIssue]:
        """Fetch the most recently created issues of a project.

        Single bounded fetch, newest first. Issues beyond the cap are not
        paged in.

        Args:
            project_key: The project key.
            max_results: Cap on returned issues (defaults to the client setting).

        Returns:
            List of TrackerIssue objects.
        """
        params = {
            "jql": f"project = {project_key} ORDER BY created DESC",
            "maxResults": max_results or self.max_results,
            "expand": "names,schema",
        }
        response = await self._request("GET", "/search", params=params)
        return [TrackerIssue.from_api(i) for i in response.json().get("issues") or []]

    async def get_issue(self, issue_key: str) -> TrackerIssue:
        """Get a single issue by id or key."""
        response = await self._request("GET", f"/issue/{issue_key}")
        return TrackerIssue.from_api(response.json())

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        issue_type: str,
        description: dict[str, Any] | None = None,
        priority: str | None = None,
    ) -> TrackerIssueRef:
        """Create an issue.

        Args:
            project_key: Destination project key.
            summary: Issue summary.
            issue_type: Issue type name (e.g., "Task").
            description: Description as a rich document (ADF).
            priority: Priority name (e.g., "Medium").

        Returns:
            Identity of the created issue.
        """
        fields: dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description is not None:
            fields["description"] = description
        if priority:
            fields["priority"] = {"name": priority}

        response = await self._request("POST", "/issue", json={"fields": fields})
        data = response.json()
        return TrackerIssueRef(
            id=str(data["id"]),
            key=data["key"],
            url=f"https://{self.domain}/browse/{data['key']}",
        )

    async def update_issue(
        self,
        issue_key: str,
        summary: str | None = None,
        description: dict[str, Any] | None = None,
        priority: str | None = None,
        transition_id: str | None = None,
    ) -> None:
        """Update issue fields, then optionally apply a transition.

        Args:
            issue_key: The issue key.
            summary: New summary.
            description: New description as a rich document (ADF).
            priority: New priority name.
            transition_id: Transition to apply after the field update.
        """
        fields: dict[str, Any] = {}
        if summary is not None:
            fields["summary"] = summary
        if description is not None:
            fields["description"] = description
        if priority:
            fields["priority"] = {"name": priority}

        if fields:
            await self._request("PUT", f"/issue/{issue_key}", json={"fields": fields})
        if transition_id:
            await self.transition_issue(issue_key, transition_id)

    # =========================================================================
    # Transition Operations
    # =========================================================================

    async def get_issue_transitions(self, issue_key: str) -> list[TrackerTransition]:
        """Get available transitions for an issue."""
        response = await self._request("GET", f"/issue/{issue_key}/transitions")
        transitions = []
        for t in response.json().get("transitions") or []:
            to_status = t.get("to") or {}
            transitions.append(
                TrackerTransition(
                    id=str(t["id"]),
                    name=t.get("name", ""),
                    to_status_id=str(to_status["id"]) if to_status.get("id") is not None else None,
                    to_status=to_status.get("name", ""),
                )
            )
        return transitions

    async def find_transition_to(self, issue_key: str, status_id: str) -> TrackerTransition | None:
        """Find the transition that moves an issue into the given status."""
        for t in await self.get_issue_transitions(issue_key):
            if t.to_status_id == status_id:
                return t
        return None

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        """Perform a workflow transition on an issue."""
        await self._request(
            "POST",
            f"/issue/{issue_key}/transitions",
            json={"transition": {"id": transition_id}},
        )
        logger.info(f"Transitioned {issue_key} via transition {transition_id}")


def _retry_after(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Retry-After", "60"))
    except (TypeError, ValueError):
        return 60
