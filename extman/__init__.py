"""extman - extension lifecycle manager."""

__version__ = "1.0.0"
