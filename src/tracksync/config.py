"""Configuration management for tracksync."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

CONFIG_DIR = ".tracksync"


class NotificationConfig(BaseModel):
    """Notification settings."""

    enabled: bool = True
    provider: Literal["console", "ntfy", "none"] = "console"
    ntfy_server: str = "https://ntfy.sh"
    ntfy_topic: str = "tracksync"


class TrackerConfig(BaseModel):
    """Tracker API client settings."""

    timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    max_retries: int = Field(default=3, ge=1, description="Attempts per request for transient failures")
    max_results: int = Field(default=100, ge=1, description="Issues fetched per project (newest first)")


class ExportConfig(BaseModel):
    """Export settings."""

    default_issue_type: str = Field(default="Task", description="Issue type used when the project's types cannot be fetched")
    default_priority: str = Field(default="Medium", description="Priority used when priorities cannot be fetched")
    strict_status_mapping: bool = Field(
        default=False,
        description="Fail tasks whose status has no mapping instead of using the first tracker status",
    )
    concurrency: int = Field(default=1, ge=1, description="Issues created in parallel during export")


class Config(BaseModel):
    """tracksync configuration."""

    database_path: Path = Field(default=Path(f"{CONFIG_DIR}/state.db"), description="SQLite database file")
    operation_timeout: float = Field(default=600.0, gt=0, description="Upper bound for one import/export/sync in seconds")
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from file or use defaults."""
        if config_path is None:
            # Look for config in .tracksync/config.yaml
            config_path = Path(f"{CONFIG_DIR}/config.yaml")

        if config_path.exists():
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path) -> None:
        """Save configuration to file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
