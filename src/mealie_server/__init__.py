"""Mealie tool host.

An MCP server on stdio exposing shopping list and recipe tools. It has
no LLM logic; the orchestrator spawns it as a child process.
"""

from mealie_server.main import create_server
from mealie_server.tools import MealieTools

__all__ = [
    "MealieTools",
    "create_server",
]
