"""Status lines and tables printed by the CLI commands."""

from typing import Any

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text


def _status_line(symbol: str, message: str, color: str, err: bool = False) -> None:
    click.secho(f"{symbol} {message}", fg=color, err=err)


def echo_success(message: str) -> None:
    _status_line("✓", message, "green")


def echo_error(message: str) -> None:
    """Errors go to stderr."""
    _status_line("✗", message, "red", err=True)


def echo_warning(message: str) -> None:
    _status_line("⚠", message, "yellow")


def echo_info(message: str) -> None:
    _status_line("ℹ", message, "blue")


def format_bytes(size: int | None) -> str:
    """Format a byte count using binary units, ``-`` when unknown."""
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TiB"


def print_table(console: Console, title: str, columns: list[str], rows: list[list[Any]]) -> None:
    """Print a titled table; cells are shown literally, never as markup."""
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*[Text(str(cell)) for cell in row])
    console.print(table)
