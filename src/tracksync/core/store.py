"""Data-access interface consumed by the sync engine.

The orchestrator receives a ``DataStore`` explicitly; it never reaches a
global database client. Implementations must enforce the uniqueness
constraints listed below and raise ``ConflictError`` when a write violates
one:

- one integration per (workspace_id, vendor)
- one project mapping per (integration_id, external_project_id)
- one status per (integration_id, project_id, external_id)
- one task per (integration_id, external_id)

They must also reject a task whose ``parent_task_id`` does not reference an
existing task.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tracksync.core.models import (
        ExternalProjectMapping,
        IntegrationConfig,
        Project,
        Space,
        Status,
        Task,
        Workspace,
    )


class DataStore(Protocol):
    """Relational data access for workspaces, projects, statuses and tasks."""

    # Workspaces and spaces
    def get_workspace(self, workspace_id: str) -> Workspace | None: ...

    def get_space(self, space_id: str) -> Space | None: ...

    # Projects
    def get_project(self, project_id: str) -> Project | None: ...

    def insert_project(self, project: Project) -> Project: ...

    def update_project(self, project: Project) -> None: ...

    def touch_project(self, project_id: str) -> None: ...

    # Integrations
    def get_integration(self, workspace_id: str, vendor: str = "jira") -> IntegrationConfig | None: ...

    def upsert_integration(self, integration: IntegrationConfig) -> IntegrationConfig: ...

    # Project mappings
    def get_project_mapping(self, integration_id: str, external_project_id: str) -> ExternalProjectMapping | None: ...

    def insert_project_mapping(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping: ...

    # Statuses
    def get_status(self, status_id: str) -> Status | None: ...

    def find_status(self, integration_id: str, external_id: str) -> Status | None: ...

    def list_statuses(self, project_id: str, integration_id: str | None = None) -> list[Status]: ...

    def insert_statuses(self, statuses: Sequence[Status]) -> list[Status]: ...

    def update_statuses(self, statuses: Sequence[Status]) -> None: ...

    # Tasks
    def get_task(self, task_id: str) -> Task | None: ...

    def find_tasks(self, integration_id: str, external_ids: Sequence[str]) -> dict[str, Task]: ...

    def list_tasks(
        self,
        workspace_id: str,
        project_id: str | None = None,
        space_id: str | None = None,
        integration_id: str | None = None,
    ) -> list[Task]: ...

    def insert_tasks(self, tasks: Sequence[Task]) -> list[Task]: ...

    def update_tasks(self, tasks: Sequence[Task]) -> None: ...


class IdentityProvider(Protocol):
    """Resolves the acting user for an operation."""

    def current_user_id(self) -> str | None: ...
