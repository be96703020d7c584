"""The ``persistcall`` command line.

:data:`app` carries the ``fetch`` command and the ``cache`` and ``config``
groups.  :func:`main` is the console script: library errors become their
exit codes and anything unexpected leaves a crash log behind.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
import typer
from rich.console import Console
from rich.logging import RichHandler

from persistcall import __version__
from persistcall.commands.cache import cache_app
from persistcall.commands.config import config_app
from persistcall.commands.fetch import fetch_command
from persistcall.config import get_data_dir
from persistcall.exceptions import PersistCallError
from persistcall.exit_codes import EXIT_GENERIC_FAILURE
from persistcall.output import OutputFormat, OutputManager, error, set_output

EXIT_CANCELLED = 130

app = typer.Typer(
    name="persistcall",
    help="Fetch URLs through a persistent, freshness-aware cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("fetch")(fetch_command)
app.add_typer(cache_app, name="cache", help="Inspect and manage the on-disk cache.")
app.add_typer(config_app, name="config", help="Show or change stored settings.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"persistcall {__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    """Route the ``persistcall`` logger to stderr via Rich, replacing earlier handlers."""
    logger = logging.getLogger("persistcall")
    logger.handlers.clear()
    logger.addHandler(
        RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
    )
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Print the version."
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", help="Root of the on-disk cache."
    ),
    json_output: bool = typer.Option(False, "--json", help="Emit data as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Emit tab-separated text."),
    no_color: bool = typer.Option(False, "--no-color", help="Never colour output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide informational messages."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show cache decisions."),
    force: bool = typer.Option(False, "--force", "-f", help="Do not ask before deleting."),
    output_file: Optional[str] = typer.Option(
        None, "-o", "--output", help="Write data to FILE instead of stdout."
    ),
) -> None:
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = OutputFormat.AUTO
    set_output(OutputManager(fmt, no_color, quiet, verbose, output_file))
    _configure_logging(verbose)

    ctx.obj = {"cache_dir": cache_dir, "force": force, "verbose": verbose}


def _setup_signal_handlers() -> None:
    def _on_sigint(signum: int, frame: Any) -> None:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)

    signal.signal(signal.SIGINT, _on_sigint)


def _write_crash_log() -> Path:
    """Save the traceback being handled to ``<data dir>/logs/crash-<time>.log``."""
    path = get_data_dir() / "logs" / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(traceback.format_exc(), encoding="utf-8")
    return path


def _exit_code_for(exc: Exception) -> int:
    """Report *exc* on stderr and pick the process exit code for it."""
    if isinstance(exc, click.exceptions.Exit):
        return exc.exit_code
    if isinstance(exc, click.ClickException):
        exc.show()
        return exc.exit_code
    if isinstance(exc, click.exceptions.Abort):
        sys.stderr.write("Aborted!\n")
        return EXIT_GENERIC_FAILURE
    if isinstance(exc, PersistCallError):
        error(str(exc))
        return exc.exit_code
    error(f"Unexpected error. Debug log: {_write_crash_log()}")
    return EXIT_GENERIC_FAILURE


def main() -> None:
    _setup_signal_handlers()
    try:
        code = app(standalone_mode=False)
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        code = EXIT_CANCELLED
    except Exception as exc:
        code = _exit_code_for(exc)
    sys.exit(code or 0)
