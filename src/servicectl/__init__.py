"""servicectl: command resolution and dispatch for a multi-service CLI."""

__version__ = "0.1.0"
