"""Command-line interface for extman."""
