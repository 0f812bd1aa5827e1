"""SQLite persistence for workspaces, integrations, mappings, statuses and tasks."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tracksync.core.models import (
    EntityKind,
    ExternalProjectMapping,
    IntegrationConfig,
    Project,
    ProjectExternalMeta,
    Space,
    Status,
    StatusColor,
    StatusExternalMeta,
    StatusScope,
    SyncState,
    Task,
    TaskExternalMeta,
    TaskPriority,
    Workspace,
    external_meta_adapter,
)
from tracksync.errors import ConflictError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Generator, Sequence

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS workspaces (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS spaces (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    space_id TEXT NOT NULL REFERENCES spaces(id),
    name TEXT NOT NULL,
    kind TEXT NOT NULL DEFAULT 'default',
    external_id TEXT,
    external_data TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS integrations (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL REFERENCES workspaces(id),
    vendor TEXT NOT NULL,
    domain TEXT NOT NULL,
    email TEXT NOT NULL,
    api_token TEXT NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT 1,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    UNIQUE(workspace_id, vendor)
);

CREATE TABLE IF NOT EXISTS external_project_mappings (
    id TEXT PRIMARY KEY,
    integration_id TEXT NOT NULL REFERENCES integrations(id),
    external_project_id TEXT NOT NULL,
    project_key TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT,
    lead TEXT,
    url TEXT,
    space_id TEXT NOT NULL,
    project_id TEXT NOT NULL REFERENCES projects(id),
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    UNIQUE(integration_id, external_project_id)
);

CREATE TABLE IF NOT EXISTS statuses (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    space_id TEXT,
    project_id TEXT,
    sprint_id TEXT,
    name TEXT NOT NULL,
    color TEXT NOT NULL,
    position INTEGER NOT NULL DEFAULT 0,
    scope TEXT NOT NULL,
    integration_id TEXT,
    external_id TEXT,
    external_data TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_statuses_external
    ON statuses(integration_id, external_id)
    WHERE external_id IS NOT NULL;

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    space_id TEXT,
    project_id TEXT,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status_id TEXT REFERENCES statuses(id),
    priority TEXT NOT NULL,
    parent_task_id TEXT REFERENCES tasks(id),
    due_date TEXT,
    kind TEXT NOT NULL DEFAULT 'default',
    integration_id TEXT,
    external_id TEXT,
    external_data TEXT,
    sync_status TEXT NOT NULL DEFAULT 'unsynced',
    pending_sync BOOLEAN NOT NULL DEFAULT 0,
    last_synced_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_external
    ON tasks(integration_id, external_id)
    WHERE external_id IS NOT NULL;
"""

TASK_COLUMNS = (
    "id",
    "workspace_id",
    "space_id",
    "project_id",
    "name",
    "description",
    "status_id",
    "priority",
    "parent_task_id",
    "due_date",
    "kind",
    "integration_id",
    "external_id",
    "external_data",
    "sync_status",
    "pending_sync",
    "last_synced_at",
    "created_at",
    "updated_at",
)

STATUS_COLUMNS = (
    "id",
    "workspace_id",
    "space_id",
    "project_id",
    "sprint_id",
    "name",
    "color",
    "position",
    "scope",
    "integration_id",
    "external_id",
    "external_data",
    "created_at",
    "updated_at",
)


class StateStore:
    """SQLite implementation of the ``DataStore`` interface."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection]:
        """Context manager for database connections.

        Translates constraint violations into ``ConflictError`` (uniqueness)
        or ``ValidationError`` (foreign keys) after rolling back.
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            if "UNIQUE" in str(e):
                raise ConflictError(f"Duplicate key: {e}") from e
            raise ValidationError(f"Constraint violated: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # =========================================================================
    # Workspaces and Spaces
    # =========================================================================

    def insert_workspace(self, workspace: Workspace) -> Workspace:
        """Create a workspace."""
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO workspaces (id, name) VALUES (?, ?)",
                (workspace.id, workspace.name),
            )
        return workspace

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        """Get a workspace by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM workspaces WHERE id = ?", (workspace_id,)).fetchone()
        if row is None:
            return None
        return Workspace(id=row["id"], name=row["name"])

    def insert_space(self, space: Space) -> Space:
        """Create a space."""
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO spaces (id, workspace_id, name) VALUES (?, ?, ?)",
                (space.id, space.workspace_id, space.name),
            )
        return space

    def get_space(self, space_id: str) -> Space | None:
        """Get a space by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM spaces WHERE id = ?", (space_id,)).fetchone()
        if row is None:
            return None
        return Space(id=row["id"], workspace_id=row["workspace_id"], name=row["name"])

    # =========================================================================
    # Projects
    # =========================================================================

    def get_project(self, project_id: str) -> Project | None:
        """Get a project by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            return None
        return _row_to_project(row)

    def insert_project(self, project: Project) -> Project:
        """Create a project."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO projects
                    (id, workspace_id, space_id, name, kind, external_id, external_data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    project.id,
                    project.workspace_id,
                    project.space_id,
                    project.name,
                    project.kind.value,
                    project.external_id,
                    _dump_meta(project.external_meta),
                    project.created_at.isoformat(),
                    project.updated_at.isoformat(),
                ),
            )
        return project

    def update_project(self, project: Project) -> None:
        """Persist the mutable fields of a project."""
        with self._connection() as conn:
            conn.execute(
                """
                UPDATE projects
                SET name = ?, kind = ?, external_id = ?, external_data = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    project.name,
                    project.kind.value,
                    project.external_id,
                    _dump_meta(project.external_meta),
                    datetime.now().isoformat(),
                    project.id,
                ),
            )

    def touch_project(self, project_id: str) -> None:
        """Bump a project's updated_at timestamp."""
        with self._connection() as conn:
            conn.execute(
                "UPDATE projects SET updated_at = ? WHERE id = ?",
                (datetime.now().isoformat(), project_id),
            )

    # =========================================================================
    # Integrations
    # =========================================================================

    def get_integration(self, workspace_id: str, vendor: str = "jira") -> IntegrationConfig | None:
        """Get the integration of a workspace for a vendor."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM integrations WHERE workspace_id = ? AND vendor = ?",
                (workspace_id, vendor),
            ).fetchone()
        if row is None:
            return None
        return IntegrationConfig(
            id=row["id"],
            workspace_id=row["workspace_id"],
            vendor=row["vendor"],
            domain=row["domain"],
            email=row["email"],
            api_token=row["api_token"],
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def upsert_integration(self, integration: IntegrationConfig) -> IntegrationConfig:
        """Create the workspace integration or refresh its credentials.

        Last writer wins; the existing row keeps its id and active flag.
        """
        now = datetime.now().isoformat()
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO integrations
                    (id, workspace_id, vendor, domain, email, api_token, is_active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(workspace_id, vendor) DO UPDATE SET
                    domain = excluded.domain,
                    email = excluded.email,
                    api_token = excluded.api_token,
                    updated_at = excluded.updated_at
                """,
                (
                    integration.id,
                    integration.workspace_id,
                    integration.vendor,
                    integration.domain,
                    integration.email,
                    integration.api_token,
                    integration.is_active,
                    now,
                    now,
                ),
            )
        stored = self.get_integration(integration.workspace_id, integration.vendor)
        if stored is None:
            raise RuntimeError(f"Integration for workspace {integration.workspace_id} vanished after upsert")
        return stored

    # =========================================================================
    # Project Mappings
    # =========================================================================

    def get_project_mapping(self, integration_id: str, external_project_id: str) -> ExternalProjectMapping | None:
        """Get the mapping for a tracker project."""
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM external_project_mappings
                WHERE integration_id = ? AND external_project_id = ?
                """,
                (integration_id, external_project_id),
            ).fetchone()
        if row is None:
            return None
        return ExternalProjectMapping(
            id=row["id"],
            integration_id=row["integration_id"],
            external_project_id=row["external_project_id"],
            project_key=row["project_key"],
            name=row["name"],
            description=row["description"],
            lead=row["lead"],
            url=row["url"],
            space_id=row["space_id"],
            project_id=row["project_id"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def insert_project_mapping(self, mapping: ExternalProjectMapping) -> ExternalProjectMapping:
        """Create a project mapping. Raises ConflictError if one exists."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO external_project_mappings
                    (id, integration_id, external_project_id, project_key, name, description,
                     lead, url, space_id, project_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    mapping.id,
                    mapping.integration_id,
                    mapping.external_project_id,
                    mapping.project_key,
                    mapping.name,
                    mapping.description,
                    mapping.lead,
                    mapping.url,
                    mapping.space_id,
                    mapping.project_id,
                    mapping.created_at.isoformat(),
                    mapping.updated_at.isoformat(),
                ),
            )
        return mapping

    # =========================================================================
    # Statuses
    # =========================================================================

    def get_status(self, status_id: str) -> Status | None:
        """Get a status by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM statuses WHERE id = ?", (status_id,)).fetchone()
        if row is None:
            return None
        return _row_to_status(row)

    def find_status(self, integration_id: str, external_id: str) -> Status | None:
        """Find a tracker-origin status by its tracker id."""
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM statuses WHERE integration_id = ? AND external_id = ?",
                (integration_id, external_id),
            ).fetchone()
        if row is None:
            return None
        return _row_to_status(row)

    def list_statuses(self, project_id: str, integration_id: str | None = None) -> list[Status]:
        """List statuses of a project, only tracker-origin ones if integration_id is given."""
        query = "SELECT * FROM statuses WHERE project_id = ?"
        params: list[Any] = [project_id]
        if integration_id is not None:
            query += " AND integration_id = ? AND external_id IS NOT NULL"
            params.append(integration_id)
        query += " ORDER BY position, created_at"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_status(r) for r in rows]

    def insert_statuses(self, statuses: Sequence[Status]) -> list[Status]:
        """Insert statuses in one transaction."""
        if not statuses:
            return []
        placeholders = ", ".join("?" for _ in STATUS_COLUMNS)
        with self._connection() as conn:
            conn.executemany(
                f"INSERT INTO statuses ({', '.join(STATUS_COLUMNS)}) VALUES ({placeholders})",
                [_status_params(s) for s in statuses],
            )
        return list(statuses)

    def update_statuses(self, statuses: Sequence[Status]) -> None:
        """Update statuses in one transaction."""
        if not statuses:
            return
        now = datetime.now().isoformat()
        with self._connection() as conn:
            conn.executemany(
                """
                UPDATE statuses
                SET name = ?, color = ?, position = ?, external_data = ?, updated_at = ?
                WHERE id = ?
                """,
                [(s.name, s.color.value, s.position, _dump_meta(s.external_meta), now, s.id) for s in statuses],
            )

    # =========================================================================
    # Tasks
    # =========================================================================

    def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID."""
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        return _row_to_task(row)

    def find_tasks(self, integration_id: str, external_ids: Sequence[str]) -> dict[str, Task]:
        """Find tracker-linked tasks by external id."""
        if not external_ids:
            return {}
        placeholders = ", ".join("?" for _ in external_ids)
        with self._connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM tasks WHERE integration_id = ? AND external_id IN ({placeholders})",
                (integration_id, *external_ids),
            ).fetchall()
        return {r["external_id"]: _row_to_task(r) for r in rows}

    def list_tasks(
        self,
        workspace_id: str,
        project_id: str | None = None,
        space_id: str | None = None,
        integration_id: str | None = None,
    ) -> list[Task]:
        """List tasks of a workspace, narrowed to a project or a space.

        When integration_id is given only tracker-linked tasks are returned.
        """
        query = "SELECT * FROM tasks WHERE workspace_id = ?"
        params: list[Any] = [workspace_id]
        if project_id is not None:
            query += " AND project_id = ?"
            params.append(project_id)
        elif space_id is not None:
            query += " AND space_id = ?"
            params.append(space_id)
        if integration_id is not None:
            query += " AND integration_id = ? AND external_id IS NOT NULL"
            params.append(integration_id)
        query += " ORDER BY created_at, rowid"

        with self._connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_task(r) for r in rows]

    def insert_tasks(self, tasks: Sequence[Task]) -> list[Task]:
        """Insert tasks in one transaction, in the given order."""
        if not tasks:
            return []
        placeholders = ", ".join("?" for _ in TASK_COLUMNS)
        with self._connection() as conn:
            conn.executemany(
                f"INSERT INTO tasks ({', '.join(TASK_COLUMNS)}) VALUES ({placeholders})",
                [_task_params(t) for t in tasks],
            )
        return list(tasks)

    def update_tasks(self, tasks: Sequence[Task]) -> None:
        """Update tasks in one transaction."""
        if not tasks:
            return
        assignments = ", ".join(f"{c} = ?" for c in TASK_COLUMNS if c != "id")
        with self._connection() as conn:
            conn.executemany(
                f"UPDATE tasks SET {assignments} WHERE id = ?",
                [(*_task_params(t)[1:], t.id) for t in tasks],
            )


# =============================================================================
# Row Conversion
# =============================================================================


def _dump_meta(meta: TaskExternalMeta | ProjectExternalMeta | StatusExternalMeta | None) -> str | None:
    """Serialize external metadata at the storage boundary."""
    if meta is None:
        return None
    return external_meta_adapter.dump_json(meta).decode()


def _load_meta(value: str | None) -> TaskExternalMeta | ProjectExternalMeta | StatusExternalMeta | None:
    """Deserialize external metadata at the storage boundary."""
    if not value:
        return None
    return external_meta_adapter.validate_json(value)


def _parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO datetime string."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_project(row: sqlite3.Row) -> Project:
    meta = _load_meta(row["external_data"])
    return Project(
        id=row["id"],
        workspace_id=row["workspace_id"],
        space_id=row["space_id"],
        name=row["name"],
        kind=EntityKind(row["kind"]),
        external_id=row["external_id"],
        external_meta=meta if isinstance(meta, ProjectExternalMeta) else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _status_params(status: Status) -> tuple[Any, ...]:
    return (
        status.id,
        status.workspace_id,
        status.space_id,
        status.project_id,
        status.sprint_id,
        status.name,
        status.color.value,
        status.position,
        status.scope.value,
        status.integration_id,
        status.external_id,
        _dump_meta(status.external_meta),
        status.created_at.isoformat(),
        status.updated_at.isoformat(),
    )


def _row_to_status(row: sqlite3.Row) -> Status:
    meta = _load_meta(row["external_data"])
    return Status(
        id=row["id"],
        workspace_id=row["workspace_id"],
        space_id=row["space_id"],
        project_id=row["project_id"],
        sprint_id=row["sprint_id"],
        name=row["name"],
        color=StatusColor(row["color"]),
        position=row["position"],
        scope=StatusScope(row["scope"]),
        integration_id=row["integration_id"],
        external_id=row["external_id"],
        external_meta=meta if isinstance(meta, StatusExternalMeta) else None,
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _task_params(task: Task) -> tuple[Any, ...]:
    return (
        task.id,
        task.workspace_id,
        task.space_id,
        task.project_id,
        task.name,
        task.description,
        task.status_id,
        task.priority.value,
        task.parent_task_id,
        task.due_date,
        task.kind.value,
        task.integration_id,
        task.external_id,
        _dump_meta(task.external_meta),
        task.sync_status.value,
        task.pending_sync,
        task.last_synced_at.isoformat() if task.last_synced_at else None,
        task.created_at.isoformat(),
        task.updated_at.isoformat(),
    )


def _row_to_task(row: sqlite3.Row) -> Task:
    meta = _load_meta(row["external_data"])
    return Task(
        id=row["id"],
        workspace_id=row["workspace_id"],
        space_id=row["space_id"],
        project_id=row["project_id"],
        name=row["name"],
        description=row["description"],
        status_id=row["status_id"],
        priority=TaskPriority(row["priority"]),
        parent_task_id=row["parent_task_id"],
        due_date=row["due_date"],
        kind=EntityKind(row["kind"]),
        integration_id=row["integration_id"],
        external_id=row["external_id"],
        external_meta=meta if isinstance(meta, TaskExternalMeta) else None,
        sync_status=SyncState(row["sync_status"]),
        pending_sync=bool(row["pending_sync"]),
        last_synced_at=_parse_datetime(row["last_synced_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
