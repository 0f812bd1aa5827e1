"""Core data models for tracksync."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter


def new_id() -> str:
    """Generate a new entity id."""
    return uuid.uuid4().hex


class StatusColor(str, Enum):
    """Internal status color palette."""

    GRAY = "gray"
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    PURPLE = "purple"
    PINK = "pink"
    ORANGE = "orange"
    INDIGO = "indigo"
    TEAL = "teal"


class TaskPriority(str, Enum):
    """Internal task priority vocabulary."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StatusScope(str, Enum):
    """Where a status applies."""

    SPACE = "space"
    PROJECT = "project"
    SPRINT = "sprint"


class SyncState(str, Enum):
    """Synchronization state of a local task."""

    UNSYNCED = "unsynced"
    SYNCED = "synced"
    FAILED = "failed"


class EntityKind(str, Enum):
    """Origin of a project or task."""

    DEFAULT = "default"
    TRACKER = "tracker"


# =============================================================================
# External Metadata
# =============================================================================


class TaskExternalMeta(BaseModel):
    """Tracker metadata carried by an externally-linked task."""

    kind: Literal["task"] = "task"
    issue_key: str | None = None
    project_key: str | None = None
    tracker_priority: str | None = None
    assignee: str | None = None
    issue_type: str | None = None
    last_tracker_update: str | None = None
    last_sync_error: str | None = None
    last_sync_attempt: datetime | None = None


class ProjectExternalMeta(BaseModel):
    """Tracker metadata carried by an externally-linked project."""

    kind: Literal["project"] = "project"
    project_key: str
    description: str | None = None
    lead: str | None = None
    url: str | None = None
    last_synced_at: datetime | None = None


class StatusExternalMeta(BaseModel):
    """Tracker metadata carried by a tracker-origin status."""

    kind: Literal["status"] = "status"
    status_category: str | None = None
    color_name: str | None = None


ExternalMeta = Annotated[
    TaskExternalMeta | ProjectExternalMeta | StatusExternalMeta,
    Field(discriminator="kind"),
]

external_meta_adapter: TypeAdapter[ExternalMeta] = TypeAdapter(ExternalMeta)


# =============================================================================
# Workspace Models
# =============================================================================


class Workspace(BaseModel):
    """A workspace owning spaces and one integration per tracker vendor."""

    id: str = Field(default_factory=new_id)
    name: str


class Space(BaseModel):
    """A space inside a workspace."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    name: str


class Project(BaseModel):
    """A project inside a space."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    space_id: str
    name: str
    kind: EntityKind = EntityKind.DEFAULT
    external_id: str | None = None
    external_meta: ProjectExternalMeta | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_tracker_linked(self) -> bool:
        """Whether the project is linked to a tracker project."""
        return self.kind == EntityKind.TRACKER and bool(self.external_id)


class IntegrationConfig(BaseModel):
    """Connection between one workspace and one tracker account."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    vendor: str = "jira"
    domain: str
    email: str
    api_token: str = Field(repr=False)
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ExternalProjectMapping(BaseModel):
    """Persisted tracker project id to local project association."""

    id: str = Field(default_factory=new_id)
    integration_id: str
    external_project_id: str
    project_key: str
    name: str
    description: str | None = None
    lead: str | None = None
    url: str | None = None
    space_id: str
    project_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Status(BaseModel):
    """A workflow status."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    space_id: str | None = None
    project_id: str | None = None
    sprint_id: str | None = None
    name: str
    color: StatusColor = StatusColor.GRAY
    position: int = 0
    scope: StatusScope = StatusScope.PROJECT
    integration_id: str | None = None
    external_id: str | None = None
    external_meta: StatusExternalMeta | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Task(BaseModel):
    """A work item."""

    id: str = Field(default_factory=new_id)
    workspace_id: str
    space_id: str | None = None
    project_id: str | None = None
    name: str
    description: str = ""
    status_id: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    parent_task_id: str | None = None
    due_date: str | None = None
    kind: EntityKind = EntityKind.DEFAULT
    integration_id: str | None = None
    external_id: str | None = None
    external_meta: TaskExternalMeta | None = None
    sync_status: SyncState = SyncState.UNSYNCED
    pending_sync: bool = False
    last_synced_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Operation Inputs
# =============================================================================


class TrackerCredentials(BaseModel):
    """Credentials for one tracker account."""

    domain: str = Field(min_length=1)
    email: str = Field(min_length=1)
    api_token: str = Field(min_length=1, repr=False)


class StatusMappingEntry(BaseModel):
    """Maps a local status to a tracker status for export."""

    local_status_id: str
    external_status_id: str


class ExportPlan(BaseModel):
    """Everything needed to push local tasks into a tracker project."""

    credentials: TrackerCredentials
    project_key: str = Field(min_length=1)
    project_name: str | None = None
    create_new_project: bool = False
    status_mappings: list[StatusMappingEntry] = Field(default_factory=list)
    selected_project_id: str | None = None
    selected_space_id: str | None = None
