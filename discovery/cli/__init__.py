"""Command-line interface."""

from discovery.cli.main import cli


__all__ = ["cli"]
