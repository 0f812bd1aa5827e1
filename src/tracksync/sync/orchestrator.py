"""Import, export and reconciliation between the local store and Jira.

The orchestrator composes the tracker client, the vocabulary and content
converters, the identity registry and the dependency resolver. Storage is
reached only through the injected ``DataStore``. Completion events are
returned inside each result rather than delivered here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from tracksync.config import Config
from tracksync.core.models import (
    EntityKind,
    ExternalProjectMapping,
    IntegrationConfig,
    Project,
    ProjectExternalMeta,
    Status,
    StatusExternalMeta,
    StatusScope,
    SyncState,
    Task,
    TaskExternalMeta,
    TrackerCredentials,
)
from tracksync.errors import (
    NotFoundError,
    ProjectCreationError,
    ProjectCreationFailure,
    SyncError,
    TrackerApiError,
    TrackerConnectionError,
    TrackerError,
    TrackerErrorCode,
    ValidationError,
)
from tracksync.sync.content import adf_to_html, html_to_wiki, text_to_adf
from tracksync.sync.registry import IdentityRegistry
from tracksync.sync.resolver import DependencyResolver
from tracksync.sync.results import (
    ExportedRef,
    ExportResult,
    ImportResult,
    PushResult,
    SyncEvent,
    SyncReport,
    SyncResult,
)
from tracksync.sync.taxonomy import priority_to_tracker, translate_priority, translate_status_color
from tracksync.sync.tracker_client import TrackerClient

if TYPE_CHECKING:
    from tracksync.core.models import ExportPlan, Workspace
    from tracksync.core.store import DataStore, IdentityProvider
    from tracksync.sync.tracker_client import TrackerIssue, TrackerProject, TrackerStatus

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., TrackerClient]

ALREADY_IMPORTED_WARNING = "Some projects were already imported. New data has been added successfully."
PREFERRED_ISSUE_TYPES = ("task", "story", "issue")
PREFERRED_PRIORITIES = ("medium", "normal")

# Tracker rejection code -> (category, message template)
PROJECT_CREATION_ERRORS: dict[TrackerErrorCode, tuple[ProjectCreationFailure, str]] = {
    TrackerErrorCode.INVALID_LEAD: (
        ProjectCreationFailure.INVALID_LEAD,
        "Invalid project lead. Please ensure your Jira account has admin permissions to create projects.",
    ),
    TrackerErrorCode.KEY_CONFLICT: (
        ProjectCreationFailure.KEY_CONFLICT,
        "Project key '{key}' already exists. Please choose a different project key.",
    ),
    TrackerErrorCode.PERMISSION_DENIED: (
        ProjectCreationFailure.PERMISSION_DENIED,
        "Permission denied. Please ensure your Jira account has admin permissions to create projects.",
    ),
}


class SyncOrchestrator:
    """Runs import, export and sync operations against one data store.

    Handles:
    - Importing tracker projects with their statuses and issues
    - Exporting local tasks into a new or existing tracker project
    - Reconciling a linked project with the latest tracker state
    - Pushing local edits of linked tasks back to the tracker
    """

    def __init__(
        self,
        store: DataStore,
        config: Config | None = None,
        client_factory: ClientFactory = TrackerClient,
        identity: IdentityProvider | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Data-access layer for workspace entities.
            config: Settings (defaults apply when None).
            client_factory: Builds a tracker client from credentials.
            identity: Resolves the acting user recorded in events.
        """
        self.store = store
        self.config = config or Config()
        self.client_factory = client_factory
        self.identity = identity

    def _client(self, credentials: TrackerCredentials) -> TrackerClient:
        return self.client_factory(
            domain=credentials.domain,
            email=credentials.email,
            api_token=credentials.api_token,
            timeout=self.config.tracker.timeout,
            max_retries=self.config.tracker.max_retries,
            max_results=self.config.tracker.max_results,
        )

    def _actor_id(self) -> str | None:
        return self.identity.current_user_id() if self.identity else None

    async def test_connection(self, credentials: TrackerCredentials) -> bool:
        """Check that the credentials are accepted by the tracker."""
        async with self._client(credentials) as client:
            return await client.test_connection()

    # =========================================================================
    # Import
    # =========================================================================

    async def import_projects(
        self,
        credentials: TrackerCredentials,
        space_id: str,
        selected_keys: list[str],
    ) -> ImportResult:
        """Import tracker projects, statuses and issues into a space.

        Re-importing the same projects creates no duplicates: already mapped
        projects, statuses and tasks are reused.

        Args:
            credentials: Tracker account credentials.
            space_id: Local space receiving the projects.
            selected_keys: Keys of the tracker projects to import.

        Returns:
            Counts of created projects, statuses and tasks.

        Raises:
            NotFoundError: If the space or workspace does not exist.
            ValidationError: If no project is selected.
            TrackerError: If the tracker rejects the credentials or is unreachable.
        """
        if not selected_keys:
            raise ValidationError("No Jira projects selected")
        space = self.store.get_space(space_id)
        if space is None:
            raise NotFoundError(f"Space not found: {space_id}")
        workspace = self.store.get_workspace(space.workspace_id)
        if workspace is None:
            raise NotFoundError(f"Workspace not found: {space.workspace_id}")

        integration = self._upsert_integration(workspace.id, credentials)
        registry = IdentityRegistry(self.store, integration.id)
        result = ImportResult()

        async with self._client(credentials) as client:
            projects = await client.get_projects()
            wanted = set(selected_keys)
            selected = [p for p in projects if p.key in wanted]
            missing = wanted - {p.key for p in selected}
            if missing:
                logger.warning(f"Selected projects not found in Jira: {sorted(missing)}")

            fetched = await asyncio.gather(*(self._fetch_project_data(client, p) for p in selected))

        project_ids: dict[str, str] = {}  # Tracker project key -> local project id
        issues: list[TrackerIssue] = []
        tracker_statuses: dict[str, tuple[TrackerStatus, str]] = {}  # Status id -> (status, local project id)

        for tracker_project, data in zip(selected, fetched, strict=True):
            if data is None:
                result.projects_failed.append(tracker_project.key)
                continue
            project_issues, project_statuses = data

            mapping, created = self._register_tracker_project(registry, tracker_project, workspace.id, space.id)
            if created:
                result.projects_created += 1
            else:
                result.warning = ALREADY_IMPORTED_WARNING

            project_ids[tracker_project.key] = mapping.project_id
            issues.extend(project_issues)
            for status in project_statuses:
                tracker_statuses.setdefault(status.id, (status, mapping.project_id))

        # Statuses, shared across projects of the integration
        candidates = [
            self._new_status(status, workspace.id, space.id, project_id, integration.id, position)
            for position, (status, project_id) in enumerate(tracker_statuses.values())
        ]
        registered = registry.register_statuses(candidates)
        result.statuses_created = len(registered.created)
        status_ids = {ext_id: s.id for ext_id, s in registered.by_external_id.items()}

        # Tasks, parents first
        def convert(issue: TrackerIssue, parent_task_id: str | None) -> Task | None:
            status_id = status_ids.get(issue.status_id or "")
            if status_id is None:
                logger.warning(f"Skipping {issue.key}: status {issue.status_name!r} could not be resolved")
                return None
            project_id = project_ids.get(issue.project_key or "")
            if project_id is None:
                logger.warning(f"Skipping {issue.key}: project {issue.project_key} was not imported")
                return None
            return self._new_task(issue, workspace.id, space.id, project_id, status_id, parent_task_id, integration.id)

        resolved = DependencyResolver(registry).insert(issues, convert)
        result.tasks_created = len(resolved.created)
        result.tasks_skipped = len(resolved.skipped_orphans) + len(resolved.rejected)

        logger.info(
            f"Imported {result.projects_created} project(s), {result.statuses_created} status(es), "
            f"{result.tasks_created} task(s) into space {space.id}"
        )
        result.events.append(
            SyncEvent(
                kind="import_completed",
                workspace_id=workspace.id,
                message=f"Imported {result.tasks_created} task(s) from {len(selected)} Jira project(s)",
                counts={
                    "projects": result.projects_created,
                    "statuses": result.statuses_created,
                    "tasks": result.tasks_created,
                },
                actor_id=self._actor_id(),
            )
        )
        return result

    async def _fetch_project_data(
        self,
        client: TrackerClient,
        project: TrackerProject,
    ) -> tuple[list[TrackerIssue], list[TrackerStatus]] | None:
        """Fetch issues and statuses of one project; None if either fetch fails."""
        issues, statuses = await asyncio.gather(
            client.get_project_issues(project.key, self.config.tracker.max_results),
            client.get_project_statuses(project.key),
            return_exceptions=True,
        )
        for outcome in (issues, statuses):
            if isinstance(outcome, TrackerError):
                logger.warning(f"Skipping Jira project {project.key}: {outcome}")
                return None
            if isinstance(outcome, BaseException):
                raise outcome
        return issues, statuses  # type: ignore[return-value]

    def _register_tracker_project(
        self,
        registry: IdentityRegistry,
        tracker_project: TrackerProject,
        workspace_id: str,
        space_id: str,
    ) -> tuple[ExternalProjectMapping, bool]:
        """Map a tracker project to a local project, creating it if new."""
        existing = registry.lookup_project(tracker_project.id)
        if existing is not None:
            logger.info(f"Jira project {tracker_project.key} already imported")
            return existing, False

        project = self.store.insert_project(
            Project(
                workspace_id=workspace_id,
                space_id=space_id,
                name=tracker_project.name,
                kind=EntityKind.TRACKER,
                external_id=tracker_project.id,
                external_meta=ProjectExternalMeta(
                    project_key=tracker_project.key,
                    description=tracker_project.description,
                    lead=tracker_project.lead,
                    url=tracker_project.url,
                    last_synced_at=datetime.now(),
                ),
            )
        )
        mapping = registry.register_project(
            ExternalProjectMapping(
                integration_id=registry.integration_id,
                external_project_id=tracker_project.id,
                project_key=tracker_project.key,
                name=tracker_project.name,
                description=tracker_project.description,
                lead=tracker_project.lead,
                url=tracker_project.url,
                space_id=space_id,
                project_id=project.id,
            )
        )
        return mapping, mapping.project_id == project.id

    # =========================================================================
    # Export
    # =========================================================================

    async def export_tasks(self, plan: ExportPlan) -> ExportResult:
        """Push local tasks into a tracker project.

        Each task is created independently: one failure is counted and
        never aborts the batch.

        Args:
            plan: Credentials, destination and status mapping.

        Returns:
            Exported and failed counts with the created issue references.

        Raises:
            ValidationError: If nothing is selected or there are no tasks.
            NotFoundError: If the selected project, space or workspace is missing.
            ProjectCreationError: If the destination project cannot be created.
        """
        project: Project | None = None
        if plan.selected_project_id:
            project = self.store.get_project(plan.selected_project_id)
            if project is None:
                raise NotFoundError(f"Project not found: {plan.selected_project_id}")
            workspace_id = project.workspace_id
        elif plan.selected_space_id:
            space = self.store.get_space(plan.selected_space_id)
            if space is None:
                raise NotFoundError(f"Space not found: {plan.selected_space_id}")
            workspace_id = space.workspace_id
        else:
            raise ValidationError("Select a project or a space to export")

        workspace = self.store.get_workspace(workspace_id)
        if workspace is None:
            raise NotFoundError(f"Workspace not found: {workspace_id}")

        export_config = self.config.export
        project_key = plan.project_key
        tracker_project_id: str | None = None
        project_url: str | None = None

        async with self._client(plan.credentials) as client:
            if plan.create_new_project:
                created_project = await self._create_tracker_project(client, plan, workspace)
                project_key = created_project.key
                tracker_project_id = created_project.id or None
                project_url = created_project.url

            tasks = self.store.list_tasks(
                workspace_id,
                project_id=project.id if project else None,
                space_id=None if project else plan.selected_space_id,
            )
            if not tasks:
                raise ValidationError("No tasks found to export")

            integration = self._upsert_integration(workspace_id, plan.credentials)

            # Destination vocabulary, fetched once per run
            issue_types: list[str] = []
            try:
                tracker_project = await client.get_project(project_key)
                issue_types = [t.name for t in tracker_project.issue_types if not t.subtask]
                tracker_project_id = tracker_project.id
                project_url = project_url or tracker_project.url
            except TrackerError as e:
                logger.warning(f"Could not fetch issue types for {project_key}, using defaults: {e}")
            priorities: list[str] = []
            try:
                priorities = [p.name for p in await client.get_priorities()]
            except TrackerError as e:
                logger.warning(f"Could not fetch priorities, using defaults: {e}")
            tracker_statuses: list[str] = []
            try:
                tracker_statuses = [s.id for s in await client.get_project_statuses(project_key)]
            except TrackerError as e:
                logger.warning(f"Could not fetch statuses for {project_key}: {e}")

            issue_type = _pick(issue_types, PREFERRED_ISSUE_TYPES) or export_config.default_issue_type
            priority = _pick(priorities, PREFERRED_PRIORITIES) or export_config.default_priority
            status_mapping = {m.local_status_id: m.external_status_id for m in plan.status_mappings}
            fallback_status = tracker_statuses[0] if tracker_statuses else None

            semaphore = asyncio.Semaphore(export_config.concurrency)

            async def export_one(task: Task) -> ExportedRef | None:
                async with semaphore:
                    try:
                        return await self._export_task(
                            client,
                            task,
                            project_key,
                            issue_type,
                            priority,
                            status_mapping.get(task.status_id or ""),
                            fallback_status,
                            integration.id,
                        )
                    except SyncError as e:
                        logger.error(f"Failed to record export of task {task.id}: {e}")
                        return None

            outcomes = await asyncio.gather(*(export_one(t) for t in tasks))

        result = ExportResult(project_key=project_key, total=len(tasks))
        for ref in outcomes:
            if ref is None:
                result.failed += 1
            else:
                result.exported += 1
                result.exported_refs.append(ref)

        if project is not None:
            self._link_exported_project(project, integration.id, project_key, tracker_project_id, project_url)

        logger.info(f"Exported {result.exported}/{result.total} task(s) to {project_key} ({result.failed} failed)")
        result.events.append(
            SyncEvent(
                kind="export_completed",
                workspace_id=workspace_id,
                project_id=project.id if project else None,
                message=f"Exported {result.exported} of {result.total} task(s) to Jira project {project_key}",
                counts={"exported": result.exported, "failed": result.failed, "total": result.total},
                actor_id=self._actor_id(),
            )
        )
        return result

    async def _create_tracker_project(
        self,
        client: TrackerClient,
        plan: ExportPlan,
        workspace: Workspace,
    ) -> TrackerProject:
        """Create the destination project, led by the authenticated user.

        Raises:
            ProjectCreationError: Categorized from the tracker error code.
        """
        try:
            user = await client.get_current_user()
            if not user.account_id:
                raise ProjectCreationError(
                    "Failed to create Jira project: could not resolve the current Jira user",
                    ProjectCreationFailure.GENERIC,
                )
            return await client.create_project(
                key=plan.project_key,
                name=plan.project_name or plan.project_key,
                lead_account_id=user.account_id,
                description=f"Project exported from tracksync workspace: {workspace.name}",
            )
        except TrackerApiError as e:
            logger.error(f"Failed to create Jira project {plan.project_key}: {e}")
            if e.code in PROJECT_CREATION_ERRORS:
                category, template = PROJECT_CREATION_ERRORS[e.code]
                raise ProjectCreationError(template.format(key=plan.project_key), category) from e
            raise ProjectCreationError(f"Failed to create Jira project: {e}", ProjectCreationFailure.GENERIC) from e
        except TrackerConnectionError as e:
            raise ProjectCreationError(f"Failed to create Jira project: {e}", ProjectCreationFailure.GENERIC) from e

    async def _export_task(
        self,
        client: TrackerClient,
        task: Task,
        project_key: str,
        issue_type: str,
        priority: str,
        mapped_status: str | None,
        fallback_status: str | None,
        integration_id: str,
    ) -> ExportedRef | None:
        """Create one issue for a task. Returns None on failure."""
        target_status = mapped_status
        if target_status is None:
            if self.config.export.strict_status_mapping:
                logger.warning(f"Task {task.id} has no status mapping, not exported")
                self._mark_failed(task, "No status mapping for the task's status")
                return None
            target_status = fallback_status
            logger.info(f"Task {task.id} has no status mapping, using first available status {target_status}")

        try:
            ref = await client.create_issue(
                project_key,
                summary=task.name,
                issue_type=issue_type,
                description=text_to_adf(html_to_wiki(task.description)),
                priority=priority,
            )
        except TrackerError as e:
            logger.warning(f"Failed to export task {task.id}: {e}")
            self._mark_failed(task, str(e))
            return None

        if target_status:
            await self._transition_to(client, ref.key, target_status)

        now = datetime.now()
        task.kind = EntityKind.TRACKER
        task.integration_id = integration_id
        task.external_id = ref.id
        task.external_meta = TaskExternalMeta(
            issue_key=ref.key,
            project_key=project_key,
            tracker_priority=priority,
            issue_type=issue_type,
            last_tracker_update=now.isoformat(),
        )
        task.sync_status = SyncState.SYNCED
        task.pending_sync = False
        task.last_synced_at = now
        task.updated_at = now
        self.store.update_tasks([task])
        return ExportedRef(task_id=task.id, issue_id=ref.id, issue_key=ref.key)

    def _link_exported_project(
        self,
        project: Project,
        integration_id: str,
        project_key: str,
        tracker_project_id: str | None,
        project_url: str | None,
    ) -> None:
        """Flag an exported project as tracker-linked and record its mapping."""
        project.kind = EntityKind.TRACKER
        project.external_id = tracker_project_id or project_key
        project.external_meta = ProjectExternalMeta(
            project_key=project_key,
            url=project_url,
            last_synced_at=datetime.now(),
        )
        self.store.update_project(project)

        if tracker_project_id:
            IdentityRegistry(self.store, integration_id).register_project(
                ExternalProjectMapping(
                    integration_id=integration_id,
                    external_project_id=tracker_project_id,
                    project_key=project_key,
                    name=project.name,
                    url=project_url,
                    space_id=project.space_id,
                    project_id=project.id,
                )
            )

    # =========================================================================
    # Sync
    # =========================================================================

    async def sync_project(self, project_id: str) -> SyncResult:
        """Reconcile a tracker-linked project with the latest tracker state.

        Statuses are written before tasks; any write failure aborts the
        remaining phases. Parents are looked up through the registry, so a
        parent outside the fetched window still links. A new child whose
        parent is unknown is skipped.

        Args:
            project_id: Local project id.

        Returns:
            Updated and created counts for tasks and statuses.

        Raises:
            NotFoundError: If the project, integration or mapping is missing.
            ValidationError: If the project is not tracker-linked.
            TrackerError: If the latest tracker state cannot be fetched.
        """
        project, integration = self._linked_project(project_id)
        registry = IdentityRegistry(self.store, integration.id)
        mapping = self._resolve_mapping(registry, project)
        result = SyncResult()

        async with self._client(_credentials_of(integration)) as client:
            issues, tracker_statuses = await asyncio.gather(
                client.get_project_issues(mapping.project_key, self.config.tracker.max_results),
                client.get_project_statuses(mapping.project_key),
            )

        # Statuses: updates, then inserts, then extend the lookup map
        status_updates: list[Status] = []
        status_inserts: list[Status] = []
        for position, tracker_status in enumerate(tracker_statuses):
            local = registry.lookup_status(tracker_status.id)
            if local is None:
                status_inserts.append(
                    self._new_status(tracker_status, project.workspace_id, project.space_id, project.id, integration.id, position)
                )
                continue
            local.name = tracker_status.name
            local.color = translate_status_color(tracker_status.color_name)
            local.external_meta = StatusExternalMeta(
                status_category=tracker_status.category_key,
                color_name=tracker_status.color_name,
            )
            status_updates.append(local)

        self.store.update_statuses(status_updates)
        registered = registry.register_statuses(status_inserts)
        result.statuses_updated = len(status_updates)
        result.statuses_created = len(registered.created)

        status_ids = {s.external_id: s.id for s in status_updates if s.external_id}
        status_ids.update({ext_id: s.id for ext_id, s in registered.by_external_id.items()})

        # Tasks: flat reconciliation, updates then inserts
        existing = registry.lookup_tasks([i.id for i in issues] + [i.parent_id for i in issues if i.parent_id])
        new_roots = {i.id for i in issues if i.id not in existing and not i.parent_id}
        task_updates: list[Task] = []
        relink: list[tuple[Task, str]] = []  # (updated task, parent external id inserted below)
        root_inserts: list[Task] = []
        child_inserts: list[tuple[Task, str | None]] = []  # (task, parent external id inserted below)
        for issue in issues:
            status_id = status_ids.get(issue.status_id or "")
            if status_id is None:
                logger.warning(f"Skipping {issue.key}: status {issue.status_name!r} could not be resolved")
                result.tasks_skipped += 1
                continue

            parent = existing.get(issue.parent_id) if issue.parent_id else None
            if issue.parent_id and parent is None and issue.parent_id not in new_roots:
                logger.warning(f"Skipping {issue.key}: parent {issue.parent_id} is not imported")
                result.tasks_skipped += 1
                continue

            parent_task_id = parent.id if parent else None
            local_task = existing.get(issue.id)
            if local_task is not None:
                self._apply_issue(local_task, issue, status_id, parent_task_id)
                task_updates.append(local_task)
                if issue.parent_id and parent is None:
                    relink.append((local_task, issue.parent_id))
                continue

            task = self._new_task(issue, project.workspace_id, project.space_id, project.id, status_id, parent_task_id, integration.id)
            if not issue.parent_id:
                root_inserts.append(task)
            else:
                child_inserts.append((task, None if parent else issue.parent_id))

        self.store.update_tasks(task_updates)
        result.tasks_updated = len(task_updates)

        # Parents created in this run go in before their children
        root_ids = {task.external_id: task.id for task in root_inserts}
        children: list[Task] = []
        for task, parent_external_id in child_inserts:
            if parent_external_id is not None:
                if parent_external_id not in root_ids:
                    logger.warning(f"Skipping issue {task.external_id}: parent {parent_external_id} was skipped")
                    result.tasks_skipped += 1
                    continue
                task.parent_task_id = root_ids[parent_external_id]
            children.append(task)
        created = registry.register_tasks(root_inserts + children)
        result.tasks_created = len(created.created)

        relinked = []
        for task, parent_external_id in relink:
            if parent_external_id in created.by_external_id:
                task.parent_task_id = created.by_external_id[parent_external_id].id
                relinked.append(task)
        self.store.update_tasks(relinked)

        self.store.touch_project(project.id)

        logger.info(
            f"Synced project {project.id}: tasks {result.tasks_updated} updated / {result.tasks_created} created, "
            f"statuses {result.statuses_updated} updated / {result.statuses_created} created"
        )
        result.events.append(
            SyncEvent(
                kind="sync_completed",
                workspace_id=project.workspace_id,
                project_id=project.id,
                message=f"Synced {project.name} with Jira project {mapping.project_key}",
                counts={
                    "tasks_updated": result.tasks_updated,
                    "tasks_created": result.tasks_created,
                    "statuses_updated": result.statuses_updated,
                    "statuses_created": result.statuses_created,
                },
                actor_id=self._actor_id(),
            )
        )
        return result

    def _linked_project(self, project_id: str) -> tuple[Project, IntegrationConfig]:
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")
        if not project.is_tracker_linked:
            raise ValidationError("Project is not a Jira project")
        integration = self.store.get_integration(project.workspace_id)
        if integration is None:
            raise NotFoundError("Jira integration not found")
        return project, integration

    def _resolve_mapping(self, registry: IdentityRegistry, project: Project) -> ExternalProjectMapping:
        """Get the project mapping, recreating it from the project's metadata if missing."""
        external_id = project.external_id or ""
        mapping = registry.lookup_project(external_id)
        if mapping is not None:
            return mapping

        meta = project.external_meta
        if meta is None or not meta.project_key:
            raise NotFoundError("Jira project mapping not found and cannot be created")

        logger.warning(f"Project mapping for {meta.project_key} missing, recreating it from project metadata")
        return registry.register_project(
            ExternalProjectMapping(
                integration_id=registry.integration_id,
                external_project_id=external_id,
                project_key=meta.project_key,
                name=project.name,
                description=meta.description,
                lead=meta.lead,
                url=meta.url,
                space_id=project.space_id,
                project_id=project.id,
            )
        )

    # =========================================================================
    # Push and maintenance
    # =========================================================================

    async def push_changes(self, project_id: str) -> PushResult:
        """Push locally edited linked tasks of a project to the tracker.

        Each task is pushed independently; a failure marks that task as
        failed and records the error in its metadata.
        """
        project, integration = self._linked_project(project_id)
        tasks = [
            t
            for t in self.store.list_tasks(project.workspace_id, project_id=project.id, integration_id=integration.id)
            if t.pending_sync
        ]
        result = PushResult()
        if not tasks:
            logger.info(f"No pending changes in project {project.id}")
            return result

        async with self._client(_credentials_of(integration)) as client:
            for task in tasks:
                meta = task.external_meta or TaskExternalMeta()
                issue_key = meta.issue_key or task.external_id or ""
                try:
                    await client.update_issue(
                        issue_key,
                        summary=task.name,
                        description=text_to_adf(html_to_wiki(task.description)),
                        priority=priority_to_tracker(task.priority),
                    )
                except TrackerError as e:
                    logger.warning(f"Failed to push task {task.id} ({issue_key}): {e}")
                    self._mark_failed(task, str(e))
                    result.failed += 1
                    result.errors[task.id] = str(e)
                    continue

                status = self.store.get_status(task.status_id) if task.status_id else None
                if status is not None and status.integration_id == integration.id and status.external_id:
                    await self._transition_to(client, issue_key, status.external_id)

                now = datetime.now()
                meta.tracker_priority = priority_to_tracker(task.priority)
                meta.last_sync_error = None
                meta.last_sync_attempt = now
                task.external_meta = meta
                task.sync_status = SyncState.SYNCED
                task.pending_sync = False
                task.last_synced_at = now
                self.store.update_tasks([task])
                result.pushed += 1

        result.events.append(
            SyncEvent(
                kind="push_completed",
                workspace_id=project.workspace_id,
                project_id=project.id,
                message=f"Pushed {result.pushed} task(s) to Jira ({result.failed} failed)",
                counts={"pushed": result.pushed, "failed": result.failed},
                actor_id=self._actor_id(),
            )
        )
        return result

    def mark_task_pending(self, task_id: str) -> Task:
        """Flag a linked task as locally edited so the next push sends it."""
        task = self.store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        if not task.external_id:
            raise ValidationError("Task is not linked to a Jira issue")
        task.pending_sync = True
        task.updated_at = datetime.now()
        self.store.update_tasks([task])
        return task

    def sync_report(self, project_id: str) -> SyncReport:
        """Summarize the sync state of a project's tasks."""
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")

        integration = self.store.get_integration(project.workspace_id)
        tasks = self.store.list_tasks(project.workspace_id, project_id=project.id)
        statuses = self.store.list_statuses(project.id, integration.id if integration else None)
        return SyncReport(
            project_id=project.id,
            total_tasks=len(tasks),
            synced_tasks=sum(1 for t in tasks if t.sync_status == SyncState.SYNCED and not t.pending_sync),
            pending_tasks=sum(1 for t in tasks if t.pending_sync),
            failed_tasks=sum(1 for t in tasks if t.sync_status == SyncState.FAILED),
            unsynced_tasks=sum(1 for t in tasks if t.sync_status == SyncState.UNSYNCED),
            statuses=len(statuses),
        )

    def reset_failed(self, project_id: str) -> int:
        """Return failed tasks of a project to unsynced.

        Linked tasks are also flagged pending so the next push retries them.

        Returns:
            Number of tasks reset.
        """
        project = self.store.get_project(project_id)
        if project is None:
            raise NotFoundError(f"Project not found: {project_id}")

        failed = [t for t in self.store.list_tasks(project.workspace_id, project_id=project.id) if t.sync_status == SyncState.FAILED]
        for task in failed:
            task.sync_status = SyncState.UNSYNCED
            task.pending_sync = bool(task.external_id)
        self.store.update_tasks(failed)
        logger.info(f"Reset {len(failed)} failed task(s) in project {project.id}")
        return len(failed)

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _upsert_integration(self, workspace_id: str, credentials: TrackerCredentials) -> IntegrationConfig:
        return self.store.upsert_integration(
            IntegrationConfig(
                workspace_id=workspace_id,
                domain=credentials.domain,
                email=credentials.email,
                api_token=credentials.api_token,
            )
        )

    async def _transition_to(self, client: TrackerClient, issue_key: str, status_id: str) -> bool:
        """Move an issue into a status if a transition leads there. Never raises."""
        try:
            transition = await client.find_transition_to(issue_key, status_id)
            if transition is None:
                logger.debug(f"No transition moves {issue_key} to status {status_id}")
                return False
            await client.transition_issue(issue_key, transition.id)
        except TrackerError as e:
            logger.warning(f"Could not transition {issue_key} to status {status_id}: {e}")
            return False
        return True

    def _mark_failed(self, task: Task, error: str) -> None:
        meta = task.external_meta or TaskExternalMeta()
        meta.last_sync_error = error
        meta.last_sync_attempt = datetime.now()
        task.external_meta = meta
        task.sync_status = SyncState.FAILED
        self.store.update_tasks([task])

    @staticmethod
    def _new_status(
        tracker_status: TrackerStatus,
        workspace_id: str,
        space_id: str,
        project_id: str,
        integration_id: str,
        position: int,
    ) -> Status:
        return Status(
            workspace_id=workspace_id,
            space_id=space_id,
            project_id=project_id,
            name=tracker_status.name,
            color=translate_status_color(tracker_status.color_name),
            position=position,
            scope=StatusScope.PROJECT,
            integration_id=integration_id,
            external_id=tracker_status.id,
            external_meta=StatusExternalMeta(
                status_category=tracker_status.category_key,
                color_name=tracker_status.color_name,
            ),
        )

    @staticmethod
    def _new_task(
        issue: TrackerIssue,
        workspace_id: str,
        space_id: str,
        project_id: str,
        status_id: str,
        parent_task_id: str | None,
        integration_id: str,
    ) -> Task:
        return Task(
            workspace_id=workspace_id,
            space_id=space_id,
            project_id=project_id,
            name=issue.summary,
            description=adf_to_html(issue.description),
            status_id=status_id,
            priority=translate_priority(issue.priority),
            parent_task_id=parent_task_id,
            due_date=issue.due_date,
            kind=EntityKind.TRACKER,
            integration_id=integration_id,
            external_id=issue.id,
            external_meta=_issue_meta(issue),
            sync_status=SyncState.SYNCED,
            last_synced_at=datetime.now(),
        )

    @staticmethod
    def _apply_issue(task: Task, issue: TrackerIssue, status_id: str, parent_task_id: str | None) -> None:
        """Overwrite a linked task's content with the tracker's version."""
        now = datetime.now()
        task.name = issue.summary
        task.description = adf_to_html(issue.description)
        task.status_id = status_id
        task.priority = translate_priority(issue.priority)
        task.due_date = issue.due_date
        if parent_task_id is not None:
            task.parent_task_id = parent_task_id
        task.external_meta = _issue_meta(issue)
        task.sync_status = SyncState.SYNCED
        task.pending_sync = False
        task.last_synced_at = now
        task.updated_at = now


def _issue_meta(issue: TrackerIssue) -> TaskExternalMeta:
    return TaskExternalMeta(
        issue_key=issue.key,
        project_key=issue.project_key,
        tracker_priority=issue.priority,
        assignee=issue.assignee,
        issue_type=issue.issue_type,
        last_tracker_update=issue.updated,
    )


def _credentials_of(integration: IntegrationConfig) -> TrackerCredentials:
    return TrackerCredentials(domain=integration.domain, email=integration.email, api_token=integration.api_token)


def _pick(names: list[str], preferred: tuple[str, ...]) -> str | None:
    """First name matching a preferred one (case-insensitive), else the first name."""
    for wanted in preferred:
        for name in names:
            if name.lower() == wanted:
                return name
    return names[0] if names else None
