"""Tests for silentflow.config -- XDG paths, atomic writes, precedence."""

from __future__ import annotations

import json
import os
import stat
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from silentflow.cache import DiskBackend, MemoryBackend
from silentflow.config import (
    _atomic_write,
    get_cache_dir,
    get_config_dir,
    load_global_config,
    load_project_config,
    open_backend,
    resolve_config,
    save_global_config,
    set_config_value,
)
from silentflow.exceptions import ConfigError
from silentflow.models import CacheConfig, ClientConfig, GlobalConfig, OutputConfig


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, data: Any) -> None:
    """Write a dict as JSON to *path*, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def _user_config_path(root: Path) -> Path:
    return root / "config" / "silentflow" / "config.json"


# ---------------------------------------------------------------------------
# XDG path resolution
# ---------------------------------------------------------------------------


class TestXDGPaths:
    def test_config_dir_xdg_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("silentflow.config._is_xdg_platform", lambda: True)
        monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        result = get_config_dir()
        assert result == tmp_path / ".config" / "silentflow"
        assert result.is_dir()

    def test_config_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_config"
        monkeypatch.setattr("silentflow.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(custom))

        assert get_config_dir() == custom / "silentflow"

    def test_cache_dir_xdg_custom(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        custom = tmp_path / "custom_cache"
        monkeypatch.setattr("silentflow.config._is_xdg_platform", lambda: True)
        monkeypatch.setenv("XDG_CACHE_HOME", str(custom))

        result = get_cache_dir()
        assert result == custom / "silentflow"
        assert result.is_dir()

    def test_fallback_paths(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("silentflow.config._is_xdg_platform", lambda: False)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))

        assert get_config_dir() == tmp_path / ".silentflow"
        assert get_cache_dir() == tmp_path / ".silentflow" / "cache"


# ---------------------------------------------------------------------------
# Atomic writes
# ---------------------------------------------------------------------------


class TestAtomicWrite:
    def test_creates_file_with_content(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        _atomic_write(target, "hello world")
        assert target.read_text(encoding="utf-8") == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        target.write_text("old content", encoding="utf-8")
        _atomic_write(target, "new content")
        assert target.read_text(encoding="utf-8") == "new content"

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path: Path) -> None:
        target = tmp_path / "config.json"
        _atomic_write(target, "{}")
        assert stat.S_IMODE(target.stat().st_mode) == 0o600

    def test_no_temp_files_left_on_error(self, tmp_path: Path) -> None:
        target = tmp_path / "test.txt"
        with patch("silentflow.config.os.fsync", side_effect=OSError("disk error")):
            with pytest.raises(OSError, match="disk error"):
                _atomic_write(target, "will fail")
        assert list(tmp_path.iterdir()) == []


# ---------------------------------------------------------------------------
# Global config
# ---------------------------------------------------------------------------


class TestGlobalConfig:
    def test_load_returns_defaults_when_missing(self, isolated_config: Path) -> None:
        cfg = load_global_config()
        assert cfg == GlobalConfig()
        assert cfg.client.client_id == ""
        assert cfg.client.token_renewal_offset_seconds == 300
        assert cfg.client.claims_based_caching_enabled is False
        assert cfg.cache.backend == "disk"

    def test_save_and_load_roundtrip(self, isolated_config: Path) -> None:
        original = GlobalConfig(
            client=ClientConfig(client_id="app-1", authority="https://login.example.com/common"),
            cache=CacheConfig(backend="memory"),
            output=OutputConfig(format="json"),
        )
        save_global_config(original)
        assert load_global_config() == original

    def test_load_invalid_json_raises_config_error(self, isolated_config: Path) -> None:
        path = _user_config_path(isolated_config)
        path.parent.mkdir(parents=True)
        path.write_text("{invalid json!!!", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()

    def test_load_invalid_schema_raises_config_error(self, isolated_config: Path) -> None:
        _write_json(_user_config_path(isolated_config), {"cache": {"backend": "tape"}})
        with pytest.raises(ConfigError, match="Invalid global config"):
            load_global_config()


class TestSetConfigValue:
    def test_sets_string(self) -> None:
        cfg = set_config_value(GlobalConfig(), "client.client_id", "app-2")
        assert cfg.client.client_id == "app-2"

    def test_coerces_bool_and_int(self) -> None:
        cfg = set_config_value(GlobalConfig(), "client.claims_based_caching_enabled", "true")
        cfg = set_config_value(cfg, "client.token_renewal_offset_seconds", "60")
        assert cfg.client.claims_based_caching_enabled is True
        assert cfg.client.token_renewal_offset_seconds == 60

    def test_original_untouched(self) -> None:
        original = GlobalConfig()
        set_config_value(original, "cache.backend", "memory")
        assert original.cache.backend == "disk"

    @pytest.mark.parametrize("key", ["client", "client.nope", "nope.client_id", ""])
    def test_unknown_key(self, key: str) -> None:
        with pytest.raises(ConfigError, match="Unknown config key"):
            set_config_value(GlobalConfig(), key, "x")

    def test_invalid_value(self) -> None:
        with pytest.raises(ConfigError, match="Invalid value for 'cache.backend'"):
            set_config_value(GlobalConfig(), "cache.backend", "tape")

    def test_negative_offset_rejected(self) -> None:
        with pytest.raises(ConfigError):
            set_config_value(GlobalConfig(), "client.token_renewal_offset_seconds", "-1")


# ---------------------------------------------------------------------------
# Project config and precedence
# ---------------------------------------------------------------------------


class TestProjectConfig:
    def test_missing_returns_none(self, isolated_config: Path) -> None:
        assert load_project_config() is None

    def test_loads_object(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "silentflow.json", {"client": {"client_id": "proj"}})
        assert load_project_config() == {"client": {"client_id": "proj"}}

    def test_non_object_rejected(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "silentflow.json", ["not", "an", "object"])
        with pytest.raises(ConfigError, match="expected a JSON object"):
            load_project_config()


class TestResolveConfig:
    def test_defaults(self, isolated_config: Path) -> None:
        assert resolve_config() == GlobalConfig()

    def test_project_overrides_user_field_by_field(self, isolated_config: Path) -> None:
        save_global_config(
            GlobalConfig(client=ClientConfig(client_id="user-app", authority="https://user.example/common"))
        )
        _write_json(isolated_config / "silentflow.json", {"client": {"client_id": "proj-app"}})

        cfg = resolve_config()
        assert cfg.client.client_id == "proj-app"
        assert cfg.client.authority == "https://user.example/common"

    def test_env_overrides_project(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write_json(isolated_config / "silentflow.json", {"client": {"client_id": "proj-app"}})
        monkeypatch.setenv("SILENTFLOW_CLIENT_ID", "env-app")
        monkeypatch.setenv("SILENTFLOW_AUTHORITY", "https://env.example/common")

        cfg = resolve_config()
        assert cfg.client.client_id == "env-app"
        assert cfg.client.authority == "https://env.example/common"

    def test_cli_overrides_env(self, isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SILENTFLOW_CLIENT_ID", "env-app")
        cfg = resolve_config(cli_client_id="cli-app", cli_authority="https://cli.example/x", cli_format="plain")
        assert cfg.client.client_id == "cli-app"
        assert cfg.client.authority == "https://cli.example/x"
        assert cfg.output.format == "plain"

    def test_invalid_project_values(self, isolated_config: Path) -> None:
        _write_json(isolated_config / "silentflow.json", {"cache": {"backend": "tape"}})
        with pytest.raises(ConfigError, match="Invalid configuration"):
            resolve_config()


# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


class TestOpenBackend:
    def test_memory(self, isolated_config: Path) -> None:
        backend = open_backend(GlobalConfig(cache=CacheConfig(backend="memory")))
        assert isinstance(backend, MemoryBackend)

    def test_disk_defaults_to_cache_dir(self, isolated_config: Path) -> None:
        backend = open_backend(GlobalConfig())
        try:
            assert isinstance(backend, DiskBackend)
            assert backend.directory == isolated_config / "cache" / "silentflow" / "credentials"
        finally:
            backend.close()

    def test_disk_custom_directory(self, isolated_config: Path) -> None:
        directory = isolated_config / "tokens"
        backend = open_backend(GlobalConfig(cache=CacheConfig(directory=str(directory))))
        try:
            assert isinstance(backend, DiskBackend)
            assert backend.directory == directory / "credentials"
        finally:
            backend.close()
