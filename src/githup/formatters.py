"""Padding helpers and report rendering for console display."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from .core import OperationResult

# Column titles per command, printed after the repository column
HEADER_COLUMNS: dict[str, list[str]] = {
    "pull": ["Insertions", "Deletions", "Master gap", "Branch"],
    "checkout": ["Change"],
    "upgrade": ["Diff"],
}

SEPARATOR = " | "


def right_pad(text: str, width: int) -> str:
    """Truncate or space-pad text on the right to exactly ``width`` characters."""
    if width <= 0:
        return ""
    return text[:width].ljust(width)


def left_pad(text: str, width: int) -> str:
    """Space-pad text on the left to at least ``width`` characters.

    Unlike :func:`right_pad`, longer text is never truncated.
    """
    return text.rjust(width)


def highlight_count(value: int, width: int = 0) -> str:
    """Left-pad a count and bold it when strictly positive."""
    padded = left_pad(str(value), width)
    if value > 0:
        return f"[bold]{padded}[/]"
    return padded


def join_fields(*fields: str) -> str:
    """Join report fields with the column separator."""
    return SEPARATOR.join(fields)


def render_header(command: str, width: int) -> str:
    """Build the header line for a command.

    Args:
        command: Command name (pull, checkout, upgrade)
        width: Repository column width

    Returns:
        Header line with rich markup for the column titles
    """
    titles = [f"[bold]{title}[/]" for title in HEADER_COLUMNS.get(command, [])]
    return join_fields(right_pad("Repository", width), *titles)


class OutputFormatter:
    """Print report lines and repository errors."""

    def __init__(self, console: Console, error_console: Console | None = None):
        self.console = console
        self.error_console = error_console or Console(stderr=True, emoji=False)

    def print_line(self, line: str):
        """Print a pre-rendered report line without rich auto-highlighting."""
        self.console.print(line, highlight=False, soft_wrap=True)

    def print_header(self, command: str, width: int):
        self.print_line(render_header(command, width))

    def print_result(self, result: OperationResult):
        """Print the line of a finished repository, or its error."""
        if result.success:
            self.print_line(result.message)
            return
        self.error_console.print(
            f'[red]Error while running {result.operation} on "{escape(str(result.path))}":[/] '
            f"{escape(result.error)}",
            highlight=False,
            soft_wrap=True,
        )
