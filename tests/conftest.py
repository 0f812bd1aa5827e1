"""Shared fixtures for tracksync tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from tracksync.config import Config
from tracksync.core.models import IntegrationConfig, Project, Space, TrackerCredentials, Workspace
from tracksync.core.state import StateStore
from tracksync.errors import TrackerErrorCode, TrackerNotFoundError
from tracksync.sync.orchestrator import SyncOrchestrator
from tracksync.sync.tracker_client import (
    TrackerIssue,
    TrackerIssueRef,
    TrackerIssueType,
    TrackerPriority,
    TrackerProject,
    TrackerStatus,
    TrackerTransition,
    TrackerUser,
)


class FakeTrackerClient:
    """In-memory stand-in for TrackerClient with scripted responses.

    Acts as its own factory: the orchestrator calls it with the client
    settings and gets the same instance back.
    """

    def __init__(self) -> None:
        self.projects: list[TrackerProject] = []
        self.issues: dict[str, list[TrackerIssue]] = {}
        self.statuses: dict[str, list[TrackerStatus]] = {}
        self.priorities = [TrackerPriority("1", "Highest"), TrackerPriority("2", "High"), TrackerPriority("3", "Medium")]
        self.user = TrackerUser(account_id="acc-1", display_name="Test User", email="test@example.com")
        self.transitions: list[TrackerTransition] = []

        self.fail_fetch: set[str] = set()  # Project keys whose issue fetch fails
        self.fail_summaries: set[str] = set()  # Issue summaries whose creation fails
        self.fail_updates: set[str] = set()  # Issue keys whose update fails
        self.create_project_error: Exception | None = None
        self.connection_ok = True

        self.factory_calls: list[dict[str, Any]] = []
        self.created_projects: list[dict[str, Any]] = []
        self.created_issues: list[dict[str, Any]] = []
        self.updated_issues: list[dict[str, Any]] = []
        self.performed_transitions: list[tuple[str, str]] = []
        self._next_issue_id = 9000

    def __call__(self, **kwargs: Any) -> FakeTrackerClient:
        self.factory_calls.append(kwargs)
        return self

    async def __aenter__(self) -> FakeTrackerClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None

    # -- scripting helpers --------------------------------------------------

    def add_project(self, key: str, project_id: str, name: str | None = None) -> TrackerProject:
        project = TrackerProject(
            id=project_id,
            key=key,
            name=name or f"{key} project",
            lead="Lead Person",
            url=f"https://test.atlassian.net/projects/{key}",
            issue_types=[TrackerIssueType("1", "Bug"), TrackerIssueType("2", "Task"), TrackerIssueType("3", "Sub-task", subtask=True)],
        )
        self.projects.append(project)
        self.issues.setdefault(key, [])
        self.statuses.setdefault(key, [])
        return project

    def add_status(self, project_key: str, status_id: str, name: str, color: str = "blue-gray") -> TrackerStatus:
        status = TrackerStatus(id=status_id, name=name, category_key="new", color_name=color)
        self.statuses.setdefault(project_key, []).append(status)
        return status

    def add_issue(
        self,
        project_key: str,
        issue_id: str,
        summary: str,
        status_id: str = "1",
        parent_id: str | None = None,
        priority: str | None = "High",
        description: Any = None,
    ) -> TrackerIssue:
        number = len(self.issues.setdefault(project_key, [])) + 1
        issue = TrackerIssue(
            id=issue_id,
            key=f"{project_key}-{number}",
            summary=summary,
            description=description,
            status_id=status_id,
            status_name=f"status {status_id}",
            priority=priority,
            issue_type="Task",
            project_key=project_key,
            parent_id=parent_id,
            updated="2024-05-01T10:00:00.000+0000",
        )
        self.issues[project_key].append(issue)
        return issue

    # -- TrackerClient surface ---------------------------------------------

    async def test_connection(self) -> bool:
        return self.connection_ok

    async def get_current_user(self) -> TrackerUser:
        return self.user

    async def get_projects(self) -> list[TrackerProject]:
        return list(self.projects)

    async def get_project(self, project_key: str) -> TrackerProject:
        for project in self.projects:
            if project.key == project_key:
                return project
        raise TrackerNotFoundError(f"Resource not found: /project/{project_key}", 404, code=TrackerErrorCode.NOT_FOUND)

    async def get_project_issues(self, project_key: str, max_results: int | None = None) -> list[TrackerIssue]:
        if project_key in self.fail_fetch:
            raise TrackerNotFoundError(f"Resource not found: /search {project_key}", 404, code=TrackerErrorCode.NOT_FOUND)
        return list(self.issues.get(project_key, []))

    async def get_project_statuses(self, project_key: str) -> list[TrackerStatus]:
        return list(self.statuses.get(project_key, []))

    async def get_priorities(self) -> list[TrackerPriority]:
        return list(self.priorities)

    async def create_project(self, key: str, name: str, lead_account_id: str, description: str = "") -> TrackerProject:
        if self.create_project_error is not None:
            raise self.create_project_error
        self.created_projects.append({"key": key, "name": name, "lead": lead_account_id, "description": description})
        return self.add_project(key, f"p-{key}", name)

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        issue_type: str,
        description: dict[str, Any] | None = None,
        priority: str | None = None,
    ) -> TrackerIssueRef:
        if summary in self.fail_summaries:
            raise TrackerNotFoundError("Issue type not found", 400)
        self._next_issue_id += 1
        key = f"{project_key}-{len(self.created_issues) + 1}"
        self.created_issues.append(
            {
                "project_key": project_key,
                "summary": summary,
                "issue_type": issue_type,
                "description": description,
                "priority": priority,
                "key": key,
            }
        )
        return TrackerIssueRef(id=str(self._next_issue_id), key=key)

    async def update_issue(self, issue_key: str, **fields: Any) -> None:
        if issue_key in self.fail_updates:
            raise TrackerNotFoundError(f"Resource not found: /issue/{issue_key}", 404, code=TrackerErrorCode.NOT_FOUND)
        self.updated_issues.append({"key": issue_key, **fields})

    async def get_issue_transitions(self, issue_key: str) -> list[TrackerTransition]:
        return list(self.transitions)

    async def find_transition_to(self, issue_key: str, status_id: str) -> TrackerTransition | None:
        for transition in self.transitions:
            if transition.to_status_id == status_id:
                return transition
        return None

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        self.performed_transitions.append((issue_key, transition_id))


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Path to a fresh SQLite database file."""
    return tmp_path / "state.db"


@pytest.fixture
def store(temp_db: Path) -> StateStore:
    """State store over a temporary database."""
    return StateStore(temp_db)


@pytest.fixture
def workspace(store: StateStore) -> Workspace:
    return store.insert_workspace(Workspace(name="Acme"))


@pytest.fixture
def space(store: StateStore, workspace: Workspace) -> Space:
    return store.insert_space(Space(workspace_id=workspace.id, name="Engineering"))


@pytest.fixture
def project(store: StateStore, space: Space) -> Project:
    return store.insert_project(Project(workspace_id=space.workspace_id, space_id=space.id, name="Website"))


@pytest.fixture
def integration(store: StateStore, workspace: Workspace) -> IntegrationConfig:
    return store.upsert_integration(
        IntegrationConfig(workspace_id=workspace.id, domain="test.atlassian.net", email="test@example.com", api_token="secret-token")
    )


@pytest.fixture
def credentials() -> TrackerCredentials:
    return TrackerCredentials(domain="test.atlassian.net", email="test@example.com", api_token="secret-token")


@pytest.fixture
def tracker() -> FakeTrackerClient:
    return FakeTrackerClient()


@pytest.fixture
def config() -> Config:
    return Config()


@pytest.fixture
def orchestrator(store: StateStore, config: Config, tracker: FakeTrackerClient) -> SyncOrchestrator:
    return SyncOrchestrator(store, config, client_factory=tracker)
