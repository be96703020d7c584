"""Where persistcall keeps its files, and how its settings are layered.

Directories follow the XDG Base Directory layout on Linux and BSD and live
under ``~/.persistcall/`` everywhere else:

==========  ==========================================  ===========================
Purpose     XDG platforms                               Other platforms
==========  ==========================================  ===========================
config      ``$XDG_CONFIG_HOME/persistcall``            ``~/.persistcall``
cache       ``$XDG_CACHE_HOME/persistcall``             ``~/.persistcall/cache``
data        ``$XDG_DATA_HOME/persistcall``              ``~/.persistcall/logs``
==========  ==========================================  ===========================

Settings are a :class:`~persistcall.models.GlobalConfig`.  The user's copy
is ``config.json`` in the config directory; a ``persistcall.json`` in the
working directory is merged over it; :func:`resolve_config` then applies
environment variables and CLI flags.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, NamedTuple, Optional

from persistcall.exceptions import ConfigError
from persistcall.models import GlobalConfig
from persistcall.strategy import FetchStrategy

_APP_NAME = "persistcall"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "persistcall.json"

ENV_STRATEGY = "PERSISTCALL_STRATEGY"
ENV_CACHE_DIR = "PERSISTCALL_CACHE_DIR"


class _DirLayout(NamedTuple):
    env_var: str
    home_default: tuple[str, ...]
    fallback_subdir: Optional[str]


_LAYOUTS = {
    "config": _DirLayout("XDG_CONFIG_HOME", (".config",), None),
    "cache": _DirLayout("XDG_CACHE_HOME", (".cache",), "cache"),
    "data": _DirLayout("XDG_DATA_HOME", (".local", "share"), "logs"),
}


# --- Directories ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _app_dir(purpose: str) -> Path:
    """Resolve (and create) the directory for *purpose*: config, cache, or data."""
    layout = _LAYOUTS[purpose]
    if _is_xdg_platform():
        base = os.environ.get(layout.env_var) or Path.home().joinpath(*layout.home_default)
        path = Path(base) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
        if layout.fallback_subdir:
            path = path / layout.fallback_subdir
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Directory holding ``config.json``."""
    return _app_dir("config")


def get_cache_dir() -> Path:
    """Default root of the on-disk cache.  Safe to delete at any time."""
    return _app_dir("cache")


def get_data_dir() -> Path:
    """Directory for crash logs."""
    return _app_dir("data")


# --- Files ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* so readers never see a half-written file.

    The text goes to a sibling temp file which is fsynced and then renamed
    over *path*.  If anything fails the temp file is removed and the
    original is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path, label: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc


def load_global_config() -> GlobalConfig:
    """Load the user's config, or the defaults when there is none.

    Raises:
        ConfigError: If the file is not valid JSON or fails validation.
    """
    path = get_config_dir() / _CONFIG_FILENAME
    if not path.is_file():
        return GlobalConfig()
    data = _read_json(path, "global config")
    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    payload = json.dumps(config.model_dump(mode="json"), indent=2) + "\n"
    _atomic_write(get_config_dir() / _CONFIG_FILENAME, payload)


def load_project_config() -> Optional[dict[str, Any]]:
    """Return ``./persistcall.json`` as a dict, or ``None`` if absent.

    Raises:
        ConfigError: If the file is not a JSON object.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    data = _read_json(path, "project config")
    if not isinstance(data, dict):
        raise ConfigError(f"Project config at {path} must be a JSON object")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Layering ---


def resolve_config(
    cli_strategy: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Build the effective configuration.

    Later layers win: defaults, user ``config.json``, ``./persistcall.json``,
    ``PERSISTCALL_STRATEGY`` / ``PERSISTCALL_CACHE_DIR``, then the CLI
    arguments.

    Raises:
        ConfigError: If any layer holds an invalid value.
    """
    data = load_global_config().model_dump(mode="json")
    data = _deep_merge(data, load_project_config() or {})

    strategy = cli_strategy or os.environ.get(ENV_STRATEGY)
    if strategy:
        data["cache"]["strategy"] = str(FetchStrategy.parse(strategy))

    cache_dir = cli_cache_dir or os.environ.get(ENV_CACHE_DIR)
    if cache_dir:
        data["cache"]["directory"] = str(Path(cache_dir).expanduser())

    if cli_format:
        data["output"]["format"] = cli_format

    try:
        return GlobalConfig.model_validate(data)
    except ValueError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
