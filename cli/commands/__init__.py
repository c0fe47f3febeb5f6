"""CLI command modules for extman."""

from cli.commands.extensions import extensions_app
from cli.commands.marketplace import marketplace_app

__all__ = ["extensions_app", "marketplace_app"]
