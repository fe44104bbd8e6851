"""Terminal output helpers shared by the command line entry points."""

import functools
import sys
from typing import Callable, Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def info(message: str) -> None:
    console.print(f"[cyan]{message}[/cyan]")


def success(message: str) -> None:
    console.print(f"[bold green]{message}[/bold green]")


def warning(message: str) -> None:
    console.print(f"[bold yellow]{message}[/bold yellow]")


def error(message: str) -> None:
    err_console.print(f"[bold red]{message}[/bold red]")


def create_table(title: Optional[str] = None) -> Table:
    """Create a table with the common style."""
    return Table(title=title, show_header=True, header_style="bold magenta")


def print_table(table: Table) -> None:
    console.print(table)


def handle_errors(func: Callable) -> Callable:
    """
    Report uncaught exceptions from a click command and exit non-zero.

    click's own exceptions (usage errors, explicit exits) pass through.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (click.exceptions.ClickException, click.exceptions.Exit, click.exceptions.Abort):
            raise
        except KeyboardInterrupt:
            error("Interrupted")
            sys.exit(130)
        except Exception as e:
            error(f"Error: {e}")
            sys.exit(1)

    return wrapper
