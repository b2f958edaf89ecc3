"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from ferry.config import EventsConfig, FerrySettings, LoggingConfig, load_config
from ferry.models.platforms import ContentType, OverflowStrategy
from pydantic import ValidationError


class TestDefaults:
    def test_settings_defaults(self) -> None:
        settings = FerrySettings()
        assert settings.work_root == Path("./migrations")
        assert settings.events.queue_size == 256
        assert settings.events.flush_timeout_s == 5.0
        assert settings.migration.overflow_strategy is None

    def test_queue_size_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            EventsConfig(queue_size=0)

    def test_log_level_is_upper_cased(self) -> None:
        assert LoggingConfig(level="debug").level == "DEBUG"


class TestLoadConfig:
    def test_reads_ferry_section(self, tmp_path: Path) -> None:
        path = tmp_path / "ferry.yaml"
        path.write_text(
            "ferry:\n"
            "  work_root: /tmp/ferry-work\n"
            "  events:\n"
            "    queue_size: 16\n"
            "  migration:\n"
            "    overflow_strategy: error\n"
            "    exclude: [conversations]\n",
            encoding="utf-8",
        )

        settings = load_config(path)

        assert settings.work_root == Path("/tmp/ferry-work")
        assert settings.events.queue_size == 16
        assert settings.migration.overflow_strategy == OverflowStrategy.error
        assert settings.migration.exclude == [ContentType.conversations]

    def test_top_level_mapping_without_section(self, tmp_path: Path) -> None:
        path = tmp_path / "ferry.yaml"
        path.write_text("logging:\n  level: warning\n", encoding="utf-8")
        assert load_config(path).logging.level == "WARNING"

    def test_env_overrides_nested_values(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "ferry.yaml"
        path.write_text("ferry:\n  events:\n    queue_size: 16\n", encoding="utf-8")
        monkeypatch.setenv("FERRY_EVENTS__QUEUE_SIZE", "32")
        monkeypatch.setenv("FERRY_LOGGING__JSON_OUTPUT", "true")

        settings = load_config(path)

        assert settings.events.queue_size == 32
        assert settings.logging.json_output is True

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "ferry.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError, match="top-level mapping"):
            load_config(path)

    def test_invalid_strategy_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "ferry.yaml"
        path.write_text("ferry:\n  migration:\n    overflow_strategy: shred\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_config(path)
