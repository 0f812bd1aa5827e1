"""Core models and persistence."""

from tracksync.core.models import (
    EntityKind,
    ExportPlan,
    ExternalProjectMapping,
    IntegrationConfig,
    Project,
    Space,
    Status,
    StatusColor,
    SyncState,
    Task,
    TaskPriority,
    TrackerCredentials,
    Workspace,
)
from tracksync.core.state import StateStore
from tracksync.core.store import DataStore, IdentityProvider

__all__ = [
    "DataStore",
    "EntityKind",
    "ExportPlan",
    "ExternalProjectMapping",
    "IdentityProvider",
    "IntegrationConfig",
    "Project",
    "Space",
    "StateStore",
    "Status",
    "StatusColor",
    "SyncState",
    "Task",
    "TaskPriority",
    "TrackerCredentials",
    "Workspace",
]
