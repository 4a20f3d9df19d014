"""Tool host access.

Spawns the tool host process, snapshots its tool catalog and executes
tool calls on behalf of the orchestrator.
"""

from tool_host.catalog import ToolCatalog, to_function_schema
from tool_host.client import (
    MalformedToolArguments,
    ToolHost,
    ToolHostConnectionLost,
    ToolHostError,
    ToolInvocationFailed,
    UnsupportedToolContent,
    parse_arguments,
)

__all__ = [
    "MalformedToolArguments",
    "ToolCatalog",
    "ToolHost",
    "ToolHostConnectionLost",
    "ToolHostError",
    "ToolInvocationFailed",
    "UnsupportedToolContent",
    "parse_arguments",
    "to_function_schema",
]
