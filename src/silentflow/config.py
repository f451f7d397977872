"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for silentflow:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.silentflow/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_cache_dir`.
* **Global config** -- A single :class:`~silentflow.models.GlobalConfig`
  JSON file holding the client id, authority, silent-flow policy, cache
  location and output format.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config, and global config into the
  final effective configuration.
* **Dotted keys** -- :func:`set_config_value` updates one setting such as
  ``client.client_id`` for ``silentflow config set``.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from silentflow.cache.backends import DiskBackend, MemoryBackend, StorageBackend
from silentflow.exceptions import ConfigError
from silentflow.models import GlobalConfig

_APP_NAME = "silentflow"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "silentflow.json"

ENV_CLIENT_ID = "SILENTFLOW_CLIENT_ID"
ENV_AUTHORITY = "SILENTFLOW_AUTHORITY"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/silentflow/`` (default ``~/.config/silentflow/``).
    On macOS/Windows: ``~/.silentflow/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the credential cache directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/silentflow/`` (default ``~/.cache/silentflow/``).
    On macOS/Windows: ``~/.silentflow/cache/``.

    Unlike an HTTP cache this directory holds refresh tokens; deleting it
    signs every cached account out.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  The file is
    created with ``0o600`` permissions since it may name the client id and
    tenant.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        os.chmod(tmp_path, 0o600)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~silentflow.models.GlobalConfig`, or a
        default instance if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        return GlobalConfig.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


def set_config_value(config: GlobalConfig, dotted_key: str, value: str) -> GlobalConfig:
    """Return a copy of *config* with one dotted setting replaced.

    Args:
        config: The configuration to start from.
        dotted_key: ``section.field``, e.g. ``client.client_id`` or
            ``cache.backend``.
        value: The new value as typed on the command line.  Pydantic
            coerces it to the field's type.

    Raises:
        ConfigError: If the key is unknown or the value is invalid.
    """
    section, _, field_name = dotted_key.partition(".")
    data = config.model_dump(mode="json")
    if section not in data or not isinstance(data[section], dict) or field_name not in data[section]:
        raise ConfigError(f"Unknown config key '{dotted_key}'")
    data[section][field_name] = value
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid value for '{dotted_key}': {exc.errors()[0]['msg']}") from exc


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./silentflow.json``.

    The file holds the same sections as the global config; any section it
    names overrides the global values field by field.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


# --- Precedence resolution ---


def resolve_config(
    cli_client_id: Optional[str] = None,
    cli_authority: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_client_id``, ``cli_authority``, ``cli_format``)
        2. Environment variables (``SILENTFLOW_CLIENT_ID``, ``SILENTFLOW_AUTHORITY``)
        3. Project config (``./silentflow.json``)
        4. User config (``~/.config/silentflow/config.json``)
        5. Defaults

    Raises:
        ConfigError: If a config file is invalid.
    """
    # 5 + 4. Defaults and user config
    data = load_global_config().model_dump(mode="json")

    # 3. Project-local config
    project = load_project_config()
    if project is not None:
        for section, values in project.items():
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section].update(values)

    # 2. Environment variables
    env_client_id = os.environ.get(ENV_CLIENT_ID)
    if env_client_id:
        data["client"]["client_id"] = env_client_id
    env_authority = os.environ.get(ENV_AUTHORITY)
    if env_authority:
        data["client"]["authority"] = env_authority

    # 1. CLI flags
    if cli_client_id is not None:
        data["client"]["client_id"] = cli_client_id
    if cli_authority is not None:
        data["client"]["authority"] = cli_authority
    if cli_format is not None:
        data["output"]["format"] = cli_format

    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Cache backend ---


def open_backend(config: GlobalConfig) -> StorageBackend:
    """Create the storage backend the configuration asks for."""
    if config.cache.backend == "memory":
        return MemoryBackend()
    directory = Path(config.cache.directory).expanduser() if config.cache.directory else get_cache_dir()
    return DiskBackend(directory)
