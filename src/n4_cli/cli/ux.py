"""
Console output helpers built on rich.

Environment handling:
- Detects TTY vs pipe/CI
- Respects NO_COLOR and FORCE_COLOR
- Keeps diagnostics (stderr logging) separate from this console (stdout)
"""

from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from typing import Iterator

from questionary import Style as QStyle
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.theme import Theme

N4_THEME = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "step": "bold magenta",
        "muted": "grey62",
    }
)


def _is_interactive() -> bool:
    """Check if we're in an interactive terminal environment."""
    ci_vars = ["CI", "GITHUB_ACTIONS", "JENKINS_URL", "GITLAB_CI", "CIRCLECI", "TRAVIS"]
    if any(os.environ.get(var) for var in ci_vars):
        return False
    return sys.stdout.isatty()


console = Console(
    theme=N4_THEME,
    force_terminal=os.environ.get("FORCE_COLOR") is not None,
    no_color=os.environ.get("NO_COLOR") is not None,
)

PROMPT_STYLE = QStyle(
    [
        ("qmark", "fg:#00afaf bold"),
        ("question", "bold"),
        ("answer", "fg:#5faf5f"),
        ("pointer", "fg:#00afaf bold"),
        ("highlighted", "fg:#5f87d7 bold"),
        ("selected", "fg:#5faf5f"),
    ]
)


@contextmanager
def spinner(message: str) -> Iterator[None]:
    """Show a spinner while non-interactive work is in progress."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description=message, total=None)
        yield


def success(message: str) -> None:
    console.print(f"[success]✓ {message}[/success]")


def error(message: str) -> None:
    console.print(f"[error]✗ {message}[/error]")


def warning(message: str) -> None:
    console.print(f"[warning]⚠ {message}[/warning]")


def info(message: str) -> None:
    console.print(f"[info]ℹ {message}[/info]")


def muted(message: str) -> None:
    console.print(f"[muted]{message}[/muted]")


def step(number: int, title: str) -> None:
    """Print the heading of a provisioning step."""
    console.print(f"\n[step]{number}. {title}[/step]")


def header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def print_key_value(items: dict[str, str], title: str | None = None) -> None:
    """Print key-value pairs, skipping empty values."""
    if title:
        console.print(f"\n[bold]{title}[/bold]")

    for key, value in items.items():
        if value:
            console.print(f"  [cyan]{key}:[/cyan] {value}")


def is_interactive() -> bool:
    """Public function to check if running interactively."""
    return _is_interactive()
