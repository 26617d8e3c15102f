"""Agent runtime for agent-flow."""

from .core import Agent

__all__ = ["Agent"]
