"""Rich Console factory and theme for editionctl output.

Consoles render into a StringIO buffer so that formatting stays a pure
``ServiceResult -> str`` function. Rich drops colour codes by itself
when the buffer is not a terminal (tests, pipes).
"""

from __future__ import annotations

from io import StringIO

from rich.console import Console
from rich.theme import Theme

EDITION_THEME = Theme(
    {
        "ed.ok": "bold green",
        "ed.error": "bold red",
        "ed.warning": "bold yellow",
        "ed.op": "bold cyan",
        "ed.key": "dim",
        "ed.id": "bold blue",
        "ed.rank": "bold magenta",
        "ed.title": "bold",
        "ed.status.active": "green",
        "ed.status.inactive": "dim red",
        "ed.token": "dim",
    }
)

_STATUS_STYLES: dict[str, str] = {
    "active": "ed.status.active",
    "inactive": "ed.status.inactive",
}


def create_console(*, no_color: bool = False, width: int | None = None) -> Console:
    """Console writing to a StringIO buffer (fixed width for stable output)."""
    return Console(
        file=StringIO(),
        theme=EDITION_THEME,
        no_color=no_color,
        highlight=False,
        width=width or 120,
    )


def get_output(console: Console) -> str:
    assert isinstance(console.file, StringIO)
    return console.file.getvalue()


def style_for_status(status: str | None) -> str:
    return _STATUS_STYLES.get(status or "", "")
