"""extman CLI.

Main command-line interface for managing extensions.
"""

import logging
from typing import Optional

import typer
from rich.logging import RichHandler

from cli.commands.extensions import extensions_app
from cli.commands.marketplace import marketplace_app
from extman import __version__
from extman.output import console, print_config, print_error, print_info, print_warning

app = typer.Typer(
    name="extman",
    help="extman - install, activate and update extensions from the marketplace",
    no_args_is_help=True,
)

# Config sub-app
config_app = typer.Typer(
    name="config",
    help="Inspect configuration settings.",
)
app.add_typer(config_app, name="config")

app.add_typer(extensions_app, name="extensions")
app.add_typer(marketplace_app, name="marketplace")


def setup_logging(level: str) -> None:
    """Route log records through rich at the given level."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at DEBUG level",
    ),
) -> None:
    """Configure logging before any command runs."""
    from extman.config import get_config

    level = "DEBUG" if verbose else get_config().logging.level
    setup_logging(level)


@app.command()
def version() -> None:
    """Show the extman version."""
    console.print(f"extman {__version__}")


@config_app.command("show")
def config_show(
    section: Optional[str] = typer.Argument(
        None,
        help="Config section to show (marketplace, host, storage, logging)",
    ),
) -> None:
    """Show current configuration.

    Examples:
        extman config show           # Show all config
        extman config show storage   # Show storage section only
    """
    from extman.config import find_config_file, get_config

    config_path = find_config_file()
    if config_path:
        print_info(f"Config file: {config_path}")
    else:
        print_warning("No extman.toml found (using defaults)")

    sections = get_config().to_dict()

    if section:
        section_lower = section.lower()
        if section_lower not in sections:
            print_error(f"Unknown section: {section}")
            print_info(f"Available: {', '.join(sections)}")
            raise typer.Exit(1)
        print_config(section_lower, sections[section_lower])
        return

    for name, values in sections.items():
        print_config(name, values)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
