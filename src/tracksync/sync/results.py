"""Operation results and completion events.

Results are returned to the caller and never persisted. Each carries the
events the operation produced; delivering them is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

EventKind = Literal["import_completed", "export_completed", "sync_completed", "push_completed"]


@dataclass
class SyncEvent:
    """An "operation completed" record for the notification dispatcher."""

    kind: EventKind
    workspace_id: str
    message: str
    project_id: str | None = None
    counts: dict[str, int] = field(default_factory=dict)
    actor_id: str | None = None


@dataclass
class ImportResult:
    """Counts for an import run."""

    projects_created: int = 0
    tasks_created: int = 0
    statuses_created: int = 0
    tasks_skipped: int = 0
    projects_failed: list[str] = field(default_factory=list)  # Project keys
    warning: str | None = None
    events: list[SyncEvent] = field(default_factory=list)


@dataclass
class ExportedRef:
    """A local task and the issue it was pushed to."""

    task_id: str
    issue_id: str
    issue_key: str


@dataclass
class ExportResult:
    """Counts for an export run."""

    project_key: str
    exported: int = 0
    failed: int = 0
    total: int = 0
    exported_refs: list[ExportedRef] = field(default_factory=list)
    events: list[SyncEvent] = field(default_factory=list)


@dataclass
class SyncResult:
    """Counts for a reconciliation run."""

    tasks_updated: int = 0
    tasks_created: int = 0
    statuses_updated: int = 0
    statuses_created: int = 0
    tasks_skipped: int = 0
    events: list[SyncEvent] = field(default_factory=list)


@dataclass
class PushResult:
    """Counts for pushing local edits of linked tasks."""

    pushed: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)  # Task id -> error message
    events: list[SyncEvent] = field(default_factory=list)


@dataclass
class SyncReport:
    """Sync health of one tracker-linked project."""

    project_id: str
    total_tasks: int = 0
    synced_tasks: int = 0
    pending_tasks: int = 0
    failed_tasks: int = 0
    unsynced_tasks: int = 0
    statuses: int = 0
