"""``persistcall config``: read and edit the stored defaults.

The stored file is the user's :class:`~persistcall.models.GlobalConfig`;
project files, environment variables and CLI flags are layered over it at
run time and are not shown here.
"""

from __future__ import annotations

from typing import Any, NoReturn

import typer

from persistcall.config import get_config_dir, load_global_config, save_global_config
from persistcall.exit_codes import EXIT_INVALID_USAGE
from persistcall.models import GlobalConfig
from persistcall.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})


def _usage_error(message: str) -> NoReturn:
    error(message)
    raise typer.Exit(code=EXIT_INVALID_USAGE)


def _coerce(current: Any, value: str, key: str) -> Any:
    """Convert *value* to the type of the setting it replaces."""
    if isinstance(current, bool):
        return value.lower() in _TRUE_WORDS
    for kind, label in ((int, "an integer"), (float, "a number")):
        if isinstance(current, kind):
            try:
                return kind(value)
            except ValueError:
                _usage_error(f"{key} expects {label}, got {value!r}")
    return value


def _parent_of(data: dict[str, Any], key: str) -> tuple[dict[str, Any], str]:
    """Walk a dotted *key* and return the section holding its last component."""
    *path, leaf = key.split(".")
    section = data
    for part in path:
        section = section.get(part)
        if not isinstance(section, dict):
            _usage_error(f"Invalid config key: {key}")
    if leaf not in section or isinstance(section[leaf], dict):
        _usage_error(f"Unknown config key: {key}")
    return section, leaf


@config_app.command("show")
def config_show() -> None:
    """Print the stored configuration.

    Example::

        persistcall --json config show
    """
    info(f"Config directory: {get_config_dir()}")
    format_response(load_global_config().model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted setting name, e.g. 'cache.strategy'."),
    value: str = typer.Argument(help="New value."),
) -> None:
    """Change one setting.

    The whole configuration is validated before saving, so an unparseable
    strategy such as ``refresh:-1`` leaves the file untouched.

    Example::

        persistcall config set cache.strategy refresh:300
        persistcall config set request.timeout 10
    """
    data = load_global_config().model_dump(mode="json")
    section, leaf = _parent_of(data, key)
    section[leaf] = _coerce(section[leaf], value, key)

    try:
        updated = GlobalConfig.model_validate(data)
    except ValueError as exc:
        _usage_error(f"Rejected {key}={value}: {exc}")

    save_global_config(updated)
    success(f"Set {key} = {section[leaf]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore the default configuration (asks first unless ``--force``)."""
    if not (ctx.obj or {}).get("force") and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
