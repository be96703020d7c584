"""Terminal output for the ``persistcall`` command line.

Fetched data goes to stdout (or ``--output FILE``) and nothing else does;
diagnostics such as cache hits, warnings and errors go to stderr.  That
keeps ``persistcall fetch URL | jq`` safe.

The data format is chosen once per process.  ``auto`` becomes Rich when
stdout is a terminal and colour is allowed, plain text otherwise.  Colour
is off with ``--no-color``, any ``NO_COLOR`` value, or ``TERM=dumb``.
"""

from __future__ import annotations

import json
import os
import sys
from contextlib import contextmanager
from enum import Enum
from typing import IO, Any, Callable, Iterator, NamedTuple, Optional

from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class _Level(NamedTuple):
    prefix: str
    style: Optional[str]
    quietable: bool


_LEVELS = {
    "info": _Level("", None, True),
    "success": _Level("", "green", True),
    "warning": _Level("Warning: ", "yellow", False),
    "error": _Level("Error: ", "bold red", False),
    "debug": _Level("[debug] ", "dim", False),
}


def _is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _should_disable_color() -> bool:
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _plain_lines(data: Any) -> Iterator[str]:
    """Tab-separated rendering: dicts as ``key<TAB>value``, record lists as rows."""
    if isinstance(data, dict):
        for key, value in data.items():
            yield f"{key}\t{value}"
    elif isinstance(data, list):
        for item in data:
            yield "\t".join(map(str, item.values())) if isinstance(item, dict) else str(item)
    else:
        yield str(data)


class OutputManager:
    """Per-invocation output preferences and the consoles that honour them.

    Args:
        format: Requested data format; ``AUTO`` is resolved immediately.
        no_color: Force colour off regardless of the environment.
        quiet: Drop ``info`` and ``success`` messages.
        verbose: Emit ``debug`` messages.
        output_file: Send data to this path instead of stdout.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        output_file: Optional[str] = None,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._output_file = output_file

        if format is OutputFormat.AUTO:
            format = OutputFormat.PLAIN if self._no_color or not _is_tty() else OutputFormat.RICH
        self._format = format

        rich_data = format is OutputFormat.RICH
        self._stdout = Console(file=sys.stdout, no_color=self._no_color, force_terminal=rich_data)
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # --- data ---

    @contextmanager
    def _sink(self, mode: str) -> Iterator[IO[Any]]:
        """Yield the data destination: the output file opened in *mode*, or stdout."""
        if self._output_file is None:
            stream = sys.stdout.buffer if "b" in mode else sys.stdout
            yield stream
            stream.flush()
            return
        encoding = None if "b" in mode else "utf-8"
        with open(self._output_file, mode, encoding=encoding) as fh:
            yield fh

    def print_bytes(self, data: bytes) -> None:
        """Write a response body byte-for-byte."""
        with self._sink("wb") as out:
            out.write(data)

    def print_data(self, text: str) -> None:
        with self._sink("a") as out:
            out.write(text.rstrip("\n") + "\n")

    def format_response(self, data: Any) -> None:
        """Render a decoded value (mapping, list or scalar)."""
        if self._output_file is not None:
            text = _dumps(data) if isinstance(data, (dict, list)) else str(data)
            with self._sink("w") as out:
                out.write(text.rstrip("\n") + "\n")
        elif self._format is OutputFormat.JSON:
            self.print_data(_dumps(data))
        elif self._format is OutputFormat.RICH and isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_dumps(data), "json", theme="monokai", word_wrap=True))
        elif self._format is OutputFormat.RICH:
            self._stdout.print(str(data))
        else:
            for line in _plain_lines(data):
                self.print_data(line)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        if self._format is OutputFormat.JSON:
            self.print_data(_dumps([dict(zip(headers, row)) for row in rows]))
            return
        if self._format is OutputFormat.PLAIN:
            for row in [headers, *rows]:
                self.print_data("\t".join(row))
            return
        table = Table(*headers, title=title, header_style="bold cyan")
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # --- diagnostics ---

    def notify(self, level: str, message: str) -> None:
        """Write *message* to stderr at *level* unless quiet or verbose settings hide it."""
        lvl = _LEVELS[level]
        if lvl.quietable and self._quiet:
            return
        if level == "debug" and not self._verbose:
            return
        line = lvl.prefix + message
        if self._no_color:
            print(line, file=sys.stderr, flush=True)
        else:
            self._stderr.print(line, style=lvl.style, markup=False, highlight=False, soft_wrap=True)

    def info(self, message: str) -> None:
        self.notify("info", message)

    def success(self, message: str) -> None:
        self.notify("success", message)

    def warning(self, message: str) -> None:
        self.notify("warning", message)

    def error(self, message: str) -> None:
        self.notify("error", message)

    def debug(self, message: str) -> None:
        self.notify("debug", message)


# --- process-wide instance, installed by the root CLI callback ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def _delegate(name: str) -> Callable[..., None]:
    def _call(*args: Any, **kwargs: Any) -> None:
        getattr(get_output(), name)(*args, **kwargs)

    _call.__name__ = name
    _call.__doc__ = f"Call :meth:`OutputManager.{name}` on the process-wide manager."
    return _call


format_response = _delegate("format_response")
print_bytes = _delegate("print_bytes")
print_table = _delegate("print_table")
info = _delegate("info")
success = _delegate("success")
warning = _delegate("warning")
error = _delegate("error")
debug = _delegate("debug")
