"""Rich console output helpers."""

import typer
from rich.console import Console
from rich.table import Table

console = Console()


def info(msg: str) -> None:
    """Print an info message."""
    console.print(f"[blue]\\[Nomad][/blue] {msg}")


def ok(msg: str) -> None:
    """Print a success message."""
    console.print(f"[green]\\[Nomad] OK:[/green] {msg}")


def warn(msg: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]\\[Nomad] WARN:[/yellow] {msg}")


def error(msg: str) -> None:
    """Print an error message."""
    console.print(f"[red]\\[Nomad] ERROR:[/red] {msg}")


def section(title: str) -> None:
    """Print a section header."""
    console.print(f"\n[bold]=== {title} ===[/bold]")


def raw(text: str) -> None:
    """Print text verbatim (no markup, no wrapping).

    Used for payloads and QR art, which must survive copy/paste intact.
    """
    typer.echo(text.rstrip("\n"))


def create_table(title: str, columns: list[str]) -> Table:
    """Create a table with the given columns."""
    table = Table(title=title)
    for col in columns:
        table.add_column(col)
    return table


def print_table(table: Table) -> None:
    """Print a table."""
    console.print(table)
