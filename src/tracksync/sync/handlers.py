"""Request validation and structured responses for the sync operations.

Each handler validates a raw payload, runs the orchestrator under the
configured operation timeout, hands the returned events to the dispatcher
and converts the outcome into an ``OperationResponse``. Handlers never
raise for operation failures.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from tracksync.core.models import ExportPlan, StatusMappingEntry, TrackerCredentials
from tracksync.errors import ProjectCreationError, SyncError
from tracksync.notifications.dispatcher import EventDispatcher

if TYPE_CHECKING:
    from tracksync.sync.orchestrator import SyncOrchestrator
    from tracksync.sync.results import SyncEvent

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Missing required fields"


# =============================================================================
# Request Models
# =============================================================================


class _Request(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CredentialsPayload(_Request):
    domain: str = Field(min_length=1)
    email: str = Field(min_length=1)
    api_token: str = Field(alias="apiToken", min_length=1, repr=False)

    def to_credentials(self) -> TrackerCredentials:
        return TrackerCredentials(domain=self.domain, email=self.email, api_token=self.api_token)


class ImportRequest(CredentialsPayload):
    """Payload of an import request."""

    space_id: str = Field(min_length=1)
    selected_projects: list[str] = Field(min_length=1)


class StatusMappingPayload(_Request):
    local_status_id: str = Field(alias="localStatusId")
    jira_status_id: str = Field(alias="jiraStatusId")


class ExportRequest(_Request):
    """Payload of an export request."""

    credentials: CredentialsPayload
    project_key: str = Field(alias="projectKey", min_length=1)
    project_name: str | None = Field(default=None, alias="projectName")
    create_new_project: bool = Field(default=False, alias="createNewProject")
    status_mappings: list[StatusMappingPayload] = Field(default_factory=list, alias="statusMappings")
    selected_project_id: str | None = Field(default=None, alias="selectedProjectId")
    selected_space_id: str | None = Field(default=None, alias="selectedSpaceId")

    def to_plan(self) -> ExportPlan:
        return ExportPlan(
            credentials=self.credentials.to_credentials(),
            project_key=self.project_key,
            project_name=self.project_name,
            create_new_project=self.create_new_project,
            status_mappings=[
                StatusMappingEntry(local_status_id=m.local_status_id, external_status_id=m.jira_status_id)
                for m in self.status_mappings
            ],
            selected_project_id=self.selected_project_id,
            selected_space_id=self.selected_space_id,
        )


class SyncRequest(_Request):
    """Payload of a sync request."""

    project_id: str = Field(alias="projectId", min_length=1)


class OperationResponse(BaseModel):
    """Structured outcome of an operation."""

    success: bool
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    error_category: str | None = None
    warning: str | None = None


# =============================================================================
# Handlers
# =============================================================================


class SyncHandlers:
    """Entry layer over a ``SyncOrchestrator``."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        dispatcher: EventDispatcher | None = None,
        operation_timeout: float | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher or EventDispatcher()
        self.operation_timeout = operation_timeout or orchestrator.config.operation_timeout

    async def handle_import(self, payload: dict[str, Any]) -> OperationResponse:
        """Import tracker projects into a space."""
        try:
            request = ImportRequest.model_validate(payload)
        except pydantic.ValidationError:
            return OperationResponse(success=False, error=MISSING_FIELDS)

        async def run() -> tuple[OperationResponse, list[SyncEvent]]:
            result = await self.orchestrator.import_projects(
                request.to_credentials(),
                request.space_id,
                request.selected_projects,
            )
            return OperationResponse(
                success=True,
                message=(
                    f"Imported {result.projects_created} project(s), {result.tasks_created} task(s) "
                    f"and {result.statuses_created} status(es) from Jira"
                ),
                data={
                    "projects": result.projects_created,
                    "tasks": result.tasks_created,
                    "statuses": result.statuses_created,
                    "skippedTasks": result.tasks_skipped,
                    "failedProjects": result.projects_failed,
                },
                warning=result.warning,
            ), result.events

        return await self._run("import", run)

    async def handle_export(self, payload: dict[str, Any]) -> OperationResponse:
        """Export local tasks to a tracker project."""
        try:
            request = ExportRequest.model_validate(payload)
        except pydantic.ValidationError:
            return OperationResponse(success=False, error=MISSING_FIELDS)

        async def run() -> tuple[OperationResponse, list[SyncEvent]]:
            result = await self.orchestrator.export_tasks(request.to_plan())
            return OperationResponse(
                success=True,
                message=f"Exported {result.exported} of {result.total} task(s) to Jira project {result.project_key}",
                data={
                    "tasksExported": result.exported,
                    "tasksFailed": result.failed,
                    "totalTasks": result.total,
                    "exportedTasks": [
                        {"taskId": ref.task_id, "jiraId": ref.issue_id, "jiraKey": ref.issue_key}
                        for ref in result.exported_refs
                    ],
                    "projectKey": result.project_key,
                },
            ), result.events

        return await self._run("export", run)

    async def handle_sync(self, payload: dict[str, Any]) -> OperationResponse:
        """Reconcile a tracker-linked project."""
        try:
            request = SyncRequest.model_validate(payload)
        except pydantic.ValidationError:
            return OperationResponse(success=False, error=MISSING_FIELDS)

        async def run() -> tuple[OperationResponse, list[SyncEvent]]:
            result = await self.orchestrator.sync_project(request.project_id)
            return OperationResponse(
                success=True,
                message="Project synced with Jira",
                data={
                    "tasksUpdated": result.tasks_updated,
                    "tasksCreated": result.tasks_created,
                    "statusesUpdated": result.statuses_updated,
                    "statusesCreated": result.statuses_created,
                },
            ), result.events

        return await self._run("sync", run)

    async def _run(
        self,
        operation: str,
        run: Callable[[], Awaitable[tuple[OperationResponse, list[SyncEvent]]]],
    ) -> OperationResponse:
        """Run an operation under the timeout, converting failures to error payloads.

        Events are dispatched once the operation has returned, outside the
        timeout window.
        """
        try:
            response, events = await asyncio.wait_for(run(), timeout=self.operation_timeout)
        except TimeoutError:
            logger.error(f"{operation} timed out after {self.operation_timeout}s")
            return OperationResponse(success=False, error=f"Operation timed out after {self.operation_timeout:g}s")
        except ProjectCreationError as e:
            return OperationResponse(success=False, error=str(e), error_category=e.category.value)
        except SyncError as e:
            logger.error(f"{operation} failed: {e}")
            return OperationResponse(success=False, error=str(e))

        await self.dispatcher.dispatch(events)
        return response

    async def aclose(self) -> None:
        await self.dispatcher.aclose()
