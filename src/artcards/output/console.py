"""Buffered Rich consoles and the ``art.*`` style names renderers use."""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

DEFAULT_WIDTH = 120

ART_THEME = Theme(
    {
        # status line
        "art.ok": "bold green",
        "art.error": "bold red",
        "art.warning": "bold yellow",
        "art.op": "bold cyan",
        # records
        "art.id": "bold blue",
        "art.key": "dim",
        "art.title": "bold",
        "art.prompt": "italic",
        # gallery
        "art.path": "dim",
        "art.favorite": "yellow",
        "art.archived": "dim",
    }
)


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """A console that writes into memory instead of a terminal.

    Without a real terminal behind it Rich emits no ANSI codes, so
    CliRunner output and pipes stay plain. A fixed width keeps tables
    stable across environments.
    """
    buffer = StringIO()
    return Console(
        file=buffer,
        theme=ART_THEME,
        no_color=no_color,
        highlight=False,
        width=width or DEFAULT_WIDTH,
    )


def get_output(console: Console) -> str:
    buffer = console.file
    if not isinstance(buffer, StringIO):
        raise TypeError("console was not created by create_console()")
    return buffer.getvalue()
