"""Tests for config loading, defaults and validation."""

import json
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest

from taskboard.config import (
    CONFIG_FILENAME,
    DEFAULTS,
    ConfigError,
    get_timezone,
    load_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("TASKBOARD_CONFIG", raising=False)
    monkeypatch.delenv("TASKBOARD_DB", raising=False)
    monkeypatch.chdir(tmp_path)


def _write_config(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data))
    return path


class TestLoadConfig:
    def test_defaults_without_file(self) -> None:
        config = load_config()
        assert config["timezone"] == "UTC"
        assert config["scheduler_interval"] == DEFAULTS["scheduler_interval"]
        assert config["db_path"] == str(Path(DEFAULTS["db_path"]).expanduser())

    def test_reads_cwd_file(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"port": 9000, "timezone": "Europe/Paris"})
        config = load_config()
        assert config["port"] == 9000
        assert config["timezone"] == "Europe/Paris"
        assert config["host"] == DEFAULTS["host"]

    def test_explicit_path(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path / "other.json", {"log_level": "DEBUG"})
        assert load_config(path)["log_level"] == "DEBUG"

    def test_env_config_path(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = _write_config(tmp_path / "env.json", {"scheduler_interval": 5})
        monkeypatch.setenv("TASKBOARD_CONFIG", str(path))
        assert load_config()["scheduler_interval"] == 5

    def test_env_db_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"db_path": "/from/file.db"})
        monkeypatch.setenv("TASKBOARD_DB", str(tmp_path / "env.db"))
        assert load_config()["db_path"] == str(tmp_path / "env.db")

    def test_expands_home(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"db_path": "~/boards/tasks.db"})
        config = load_config()
        assert not config["db_path"].startswith("~")
        assert config["db_path"].endswith("boards/tasks.db")

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.json")

    def test_missing_env_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TASKBOARD_CONFIG", str(tmp_path / "nope.json"))
        with pytest.raises(ConfigError, match="not found"):
            load_config()

    def test_invalid_json(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("{not json")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            load_config()

    def test_non_object(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, ["a", "list"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config()


class TestValidation:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("port", "8080"),
            ("port", True),
            ("scheduler_interval", "soon"),
            ("db_path", 42),
            ("timezone", None),
        ],
    )
    def test_wrong_types(self, tmp_path: Path, field: str, value: Any) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {field: value})
        with pytest.raises(ConfigError, match=field):
            load_config()

    def test_negative_interval(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"scheduler_interval": -1})
        with pytest.raises(ConfigError, match="scheduler_interval"):
            load_config()

    def test_zero_interval_allowed(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"scheduler_interval": 0})
        assert load_config()["scheduler_interval"] == 0

    @pytest.mark.parametrize("port", [0, 70000])
    def test_port_range(self, tmp_path: Path, port: int) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"port": port})
        with pytest.raises(ConfigError, match="port"):
            load_config()

    def test_unknown_timezone(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"timezone": "Mars/Olympus_Mons"})
        with pytest.raises(ConfigError, match="Unknown timezone"):
            load_config()

    def test_unknown_log_level(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"log_level": "verbose"})
        with pytest.raises(ConfigError, match="log_level"):
            load_config()

    def test_log_level_case_insensitive(self, tmp_path: Path) -> None:
        _write_config(tmp_path / CONFIG_FILENAME, {"log_level": "debug"})
        assert load_config()["log_level"] == "debug"


class TestGetTimezone:
    def test_returns_zone(self) -> None:
        assert get_timezone({"timezone": "America/New_York"}) == ZoneInfo(
            "America/New_York"
        )

    def test_unknown(self) -> None:
        with pytest.raises(ConfigError):
            get_timezone({"timezone": "Nowhere/Special"})
