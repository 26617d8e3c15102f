"""Command-line interface for agent-flow."""

from .main import main

__all__ = ["main"]
