"""Command-line interface for Continuum."""

from continuum.cli.main import cli

__all__ = ["cli"]
