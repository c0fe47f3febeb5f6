"""Rich console output utilities for the extman CLI."""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from extensions.errors import OperationResult
from schemas.extension import ExtensionStatus

console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    ExtensionStatus.ACTIVE: "green",
    ExtensionStatus.INACTIVE: "dim",
    ExtensionStatus.UPDATE_AVAILABLE: "yellow",
    ExtensionStatus.NOT_INSTALLED: "red",
}


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_key_value(key: str, value: Any, key_style: str = "bold") -> None:
    """Print a key-value pair."""
    console.print(f"[{key_style}]{key}:[/{key_style}] {value}")


def print_result(result: OperationResult) -> None:
    """Print an operation result; failures show the error kind."""
    if result.success:
        print_success(escape(result.message))
    else:
        kind = result.error.value if result.error else "error"
        print_error(f"{kind}: {escape(result.message)}")


def format_status(status: ExtensionStatus) -> str:
    style = STATUS_STYLES.get(status, "")
    return f"[{style}]{status.value}[/{style}]" if style else status.value


def print_config(section: str, values: dict[str, Any]) -> None:
    """Print one configuration section as a table."""
    table = Table(title=section, show_header=True, header_style="bold")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    for key, value in values.items():
        table.add_row(key, str(value))

    console.print(table)
