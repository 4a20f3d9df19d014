"""Session tool catalog.

Snapshot of the tools a host advertised when the session started, and
their translation into the LLM's function-calling schema.
"""

import copy
from typing import Any, Iterable, Optional

from shared.logging import get_logger
from shared.models import ToolCatalogEntry
from tool_host.client import ToolHost

logger = get_logger(__name__)


def to_function_schema(entry: ToolCatalogEntry) -> dict[str, Any]:
    """
    Translate a catalog entry into an OpenAI tool definition.

    The input schema is passed through only when it declares a non-empty
    ``properties`` member; otherwise the tool takes no parameters.
    """
    function: dict[str, Any] = {
        "name": entry.name,
        "description": entry.description,
    }
    if entry.parameter_schema.get("properties"):
        function["parameters"] = copy.deepcopy(entry.parameter_schema)
    return {"type": "function", "function": function}


class ToolCatalog:
    """
    Immutable tool listing for one session.

    Fetched once from the tool host; tool hosts are not expected to change
    their catalog mid-session.
    """

    def __init__(self, entries: Iterable[ToolCatalogEntry]) -> None:
        self._entries = tuple(entries)
        self._by_name = {entry.name: entry for entry in self._entries}
        self._function_schemas = [to_function_schema(entry) for entry in self._entries]

    @classmethod
    async def fetch(cls, tool_host: ToolHost) -> "ToolCatalog":
        """Fetch the catalog from a connected tool host."""
        catalog = cls(await tool_host.list_tools())
        logger.info("Tool catalog loaded", tools=catalog.names)
        return catalog

    @property
    def entries(self) -> tuple[ToolCatalogEntry, ...]:
        return self._entries

    @property
    def names(self) -> list[str]:
        return [entry.name for entry in self._entries]

    def get(self, name: str) -> Optional[ToolCatalogEntry]:
        return self._by_name.get(name)

    def function_schemas(self) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI function-calling format."""
        return copy.deepcopy(self._function_schemas)

    def __len__(self) -> int:
        return len(self._entries)
