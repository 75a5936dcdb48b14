"""CLI - Command-line entry point."""

from .main import cli

__all__ = ['cli']
