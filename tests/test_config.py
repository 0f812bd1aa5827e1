"""Tests for configuration loading and saving."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from tracksync.config import Config, ExportConfig, TrackerConfig


class TestConfigDefaults:
    """Test default values."""

    def test_defaults(self) -> None:
        config = Config()

        assert config.database_path == Path(".tracksync/state.db")
        assert config.operation_timeout == 600.0
        assert config.tracker.max_retries == 3
        assert config.tracker.max_results == 100
        assert config.export.default_issue_type == "Task"
        assert config.export.default_priority == "Medium"
        assert config.export.strict_status_mapping is False
        assert config.export.concurrency == 1
        assert config.notifications.provider == "console"

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert Config.load(tmp_path / "absent.yaml") == Config()

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert Config.load(path) == Config()


class TestConfigFile:
    """Test reading and writing YAML files."""

    def test_partial_file_keeps_other_defaults(self, tmp_path: Path) -> None:
        """Test only the given keys are overridden."""
        path = tmp_path / "config.yaml"
        path.write_text("export:\n  concurrency: 4\nnotifications:\n  provider: ntfy\n  ntfy_topic: team\n")

        config = Config.load(path)

        assert config.export.concurrency == 4
        assert config.export.default_issue_type == "Task"
        assert config.notifications.ntfy_topic == "team"
        assert config.tracker.timeout == 30.0

    def test_save_then_load(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "config.yaml"
        config = Config(
            database_path=tmp_path / "db.sqlite",
            tracker=TrackerConfig(max_results=25),
            export=ExportConfig(strict_status_mapping=True),
        )

        config.save(path)

        assert path.exists()
        assert Config.load(path) == config


class TestConfigValidation:
    """Test rejected values."""

    @pytest.mark.parametrize(
        "data",
        [
            {"tracker": {"max_retries": 0}},
            {"tracker": {"max_results": 0}},
            {"export": {"concurrency": 0}},
            {"operation_timeout": 0},
            {"notifications": {"provider": "email"}},
        ],
    )
    def test_invalid_values(self, data: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            Config.model_validate(data)
