"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cachelane:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cachelane/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Worker config** -- a single :class:`~cachelane.models.WorkerConfig`
  stored as JSON or YAML. See :func:`load_config` and :func:`save_config`.
* **Precedence resolution** -- :func:`resolve_config` picks the config file
  from an explicit path, the environment, the project directory, or the
  user config directory, and applies environment overrides.

The resolved config is built once at startup and passed explicitly to
every component; nothing in the package reads configuration globals.

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

import yaml

from cachelane.exceptions import ConfigError
from cachelane.models import WorkerConfig

_APP_NAME = "cachelane"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "cachelane.json"
_YAML_SUFFIXES = (".yaml", ".yml")


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/cachelane/`` (default ``~/.config/cachelane/``).
    On macOS/Windows: ``~/.cachelane/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Partitions live under ``<cache_dir>/stores`` unless
    ``storage.directory`` says otherwise. Cached data can be safely deleted
    at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/cachelane/`` (default ``~/.cache/cachelane/``).
    On macOS/Windows: ``~/.cachelane/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (durable offline-action queue), creating it if necessary.

    Unlike the cache directory, data here must survive cache clearing.

    On Linux/BSD: ``$XDG_DATA_HOME/cachelane/`` (default ``~/.local/share/cachelane/``).
    On macOS/Windows: ``~/.cachelane/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
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
        fd = None  # prevent double-close below
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


def user_config_path() -> Path:
    """Path to the user-wide config file."""
    return get_config_dir() / _CONFIG_FILENAME


def _parse(path: Path, text: str) -> Any:
    if path.suffix.lower() in _YAML_SUFFIXES:
        return yaml.safe_load(text)
    return json.loads(text)


def load_config(path: str | Path) -> WorkerConfig:
    """Load and validate a worker configuration file.

    JSON is assumed unless the file ends in ``.yaml`` or ``.yml``. An
    empty YAML document yields the defaults.

    Args:
        path: Path to the config file.

    Returns:
        The deserialised :class:`~cachelane.models.WorkerConfig`.

    Raises:
        ConfigError: If the file does not exist, cannot be parsed, or
            fails Pydantic validation.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        data = _parse(path, path.read_text(encoding="utf-8"))
        return WorkerConfig.model_validate(data or {})
    except (json.JSONDecodeError, yaml.YAMLError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: WorkerConfig, path: str | Path | None = None) -> Path:
    """Persist *config* atomically.

    Args:
        config: The configuration to save.
        path: Destination file; YAML if it ends in ``.yaml``/``.yml``.
            Defaults to :func:`user_config_path`.

    Returns:
        The path written to.
    """
    target = Path(path).expanduser() if path is not None else user_config_path()
    data = config.model_dump(mode="json")
    if target.suffix.lower() in _YAML_SUFFIXES:
        text = yaml.safe_dump(data, sort_keys=False)
    else:
        text = json.dumps(data, indent=2) + "\n"
    _atomic_write(target, text)
    return target


# --- Precedence resolution ---


def find_config_file(explicit: str | Path | None = None) -> Optional[Path]:
    """Locate the config file to use, if any.

    Precedence (high to low):
        1. *explicit* path argument
        2. ``CACHELANE_CONFIG`` environment variable
        3. Project config (``./cachelane.json``)
        4. User config (``~/.config/cachelane/config.json``)

    Returns:
        The chosen path, or ``None`` when only defaults apply.
    """
    if explicit is not None:
        return Path(explicit)
    env_path = os.environ.get("CACHELANE_CONFIG")
    if env_path:
        return Path(env_path)
    project = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if project.is_file():
        return project
    user = user_config_path()
    if user.is_file():
        return user
    return None


def resolve_config(path: str | Path | None = None) -> WorkerConfig:
    """Resolve the effective worker configuration.

    Loads the file chosen by :func:`find_config_file` (or defaults), then
    applies environment overrides:

    * ``CACHELANE_GENERATION`` -- ``storage.generation``
    * ``CACHELANE_ORIGIN`` -- ``network.origin``
    * ``CACHELANE_LOG_LEVEL`` -- ``logging.level``

    Raises:
        ConfigError: If the chosen file is missing or invalid.
    """
    source = find_config_file(path)
    config = load_config(source) if source is not None else WorkerConfig()

    generation = os.environ.get("CACHELANE_GENERATION")
    if generation:
        config.storage.generation = generation
    origin = os.environ.get("CACHELANE_ORIGIN")
    if origin:
        config.network.origin = origin
    level = os.environ.get("CACHELANE_LOG_LEVEL")
    if level:
        config.logging.level = level.upper()

    return config
