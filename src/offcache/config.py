"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for offcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.offcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Worker config** -- a single :class:`~offcache.models.WorkerConfig`
  JSON file holding the version pair, the asset manifest, and origin
  request settings.
* **Precedence resolution** -- :func:`resolve_config` picks the config
  file from an explicit path, the ``OFFCACHE_CONFIG`` environment
  variable, a project-local ``offcache.json``, or the global config, and
  then applies environment overrides.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from offcache.exceptions import ConfigError
from offcache.models import WorkerConfig

_APP_NAME = "offcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "offcache.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/offcache/`` (default ``~/.config/offcache/``).
    On macOS/Windows: ``~/.offcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    The default store root lives here. Cached data can be safely deleted
    at any time; the next install repopulates it.

    On Linux/BSD: ``$XDG_CACHE_HOME/offcache/`` (default ``~/.cache/offcache/``).
    On macOS/Windows: ``~/.offcache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/offcache/`` (default ``~/.local/share/offcache/``).
    On macOS/Windows: ``~/.offcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_store_dir(config: WorkerConfig) -> Path:
    """Return the store root for *config*: ``store_dir`` or ``<cache dir>/stores``."""
    if config.store_dir:
        path = Path(config.store_dir).expanduser()
    else:
        path = get_cache_dir() / "stores"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On any failure the temp file is cleaned up.
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
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in finally
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


# --- Worker config ---


def global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config(path: Optional[Path] = None) -> WorkerConfig:
    """Load a :class:`~offcache.models.WorkerConfig` from *path*.

    Args:
        path: File to read. Defaults to the global config file.

    Returns:
        The deserialised config. If the global file does not exist, a
        default instance is returned.

    Raises:
        ConfigError: If an explicit *path* does not exist, or the file
            contains invalid JSON or fails Pydantic validation.
    """
    explicit = path is not None
    path = path if path is not None else global_config_path()
    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return WorkerConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return WorkerConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: WorkerConfig, path: Optional[Path] = None) -> Path:
    """Persist *config* atomically and return the path written."""
    path = path if path is not None else global_config_path()
    data = config.model_dump(mode="json")
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Precedence resolution ---


def resolve_config_path(cli_path: Optional[str] = None) -> Optional[Path]:
    """Return the config file selected by the precedence chain, if any.

    Precedence (high to low):
        1. CLI flag (``--config``)
        2. Environment variable ``OFFCACHE_CONFIG``
        3. Project config (``./offcache.json``)
        4. User config (``~/.config/offcache/config.json``)
    """
    if cli_path:
        return Path(cli_path)
    env_path = os.environ.get("OFFCACHE_CONFIG")
    if env_path:
        return Path(env_path)
    project = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if project.is_file():
        return project
    return None


def resolve_config(cli_path: Optional[str] = None) -> WorkerConfig:
    """Resolve the effective :class:`~offcache.models.WorkerConfig`.

    Loads the file chosen by :func:`resolve_config_path` (falling back to
    the global config and then to defaults), then applies the
    ``OFFCACHE_SCOPE`` and ``OFFCACHE_STORE_DIR`` environment overrides.
    """
    config = load_config(resolve_config_path(cli_path))

    env_scope = os.environ.get("OFFCACHE_SCOPE")
    if env_scope:
        config.scope = env_scope
    env_store = os.environ.get("OFFCACHE_STORE_DIR")
    if env_store:
        config.store_dir = env_store

    return config
