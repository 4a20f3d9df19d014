"""Tool host client.

Owns the connection to the tool-providing child process and exposes its
catalog and a single generic ``call_tool`` entry point. Talks MCP over
the child's stdin/stdout.
"""

import json
import time
from contextlib import AsyncExitStack
from typing import Any, Optional

import anyio
from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client
from mcp.shared.exceptions import McpError
from mcp.types import CONNECTION_CLOSED
from mcp.types import TextContent as MCPTextContent
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.config import ToolHostSettings
from shared.logging import get_logger
from shared.models import TextContent, ToolCatalogEntry, ToolResult

logger = get_logger(__name__)

# Transport failures surfaced by the stdio streams once the child is gone
TRANSPORT_ERRORS = (
    OSError,
    anyio.ClosedResourceError,
    anyio.BrokenResourceError,
    anyio.EndOfStream,
)


class ToolHostError(Exception):
    """Base exception for tool host errors."""
    pass


class ToolHostConnectionLost(ToolHostError):
    """The tool host process cannot be reached."""
    pass


class ToolInvocationFailed(ToolHostError):
    """The tool host reported an error for a call."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class MalformedToolArguments(ToolHostError):
    """Tool call arguments are not a JSON object."""
    pass


class UnsupportedToolContent(ToolHostError):
    """A tool returned a content block that is not plain text."""

    def __init__(self, tool_name: str, kind: str) -> None:
        super().__init__(f"Tool '{tool_name}' returned unsupported content: {kind}")
        self.tool_name = tool_name
        self.kind = kind


def parse_arguments(raw: str) -> dict[str, Any]:
    """
    Parse the argument string of an LLM function call.

    An empty string means no arguments. Anything else must decode to a
    JSON object.

    Raises:
        MalformedToolArguments: If the string is not a JSON object
    """
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise MalformedToolArguments(f"Invalid JSON arguments {raw!r}: {e}") from e
    if not isinstance(value, dict):
        raise MalformedToolArguments(f"Arguments must be a JSON object, got {raw!r}")
    return value


class ToolHost:
    """
    Client for one tool host child process.

    Provides methods for:
    - Spawning the process and performing the handshake
    - Enumerating the advertised tools
    - Executing a single tool call
    """

    def __init__(
        self,
        server_params: StdioServerParameters,
        connect_attempts: int = 3
    ) -> None:
        """
        Initialize tool host client.

        Args:
            server_params: Command, arguments and environment of the child
            connect_attempts: Spawn/handshake attempts before giving up
        """
        self.server_params = server_params
        self.connect_attempts = connect_attempts
        self.session: Optional[ClientSession] = None
        self._exit_stack: Optional[AsyncExitStack] = None

    @classmethod
    def from_settings(
        cls,
        settings: ToolHostSettings,
        env: Optional[dict[str, str]] = None
    ) -> "ToolHost":
        """
        Build a tool host from settings.

        ``env`` is merged under the configured environment; the child
        otherwise only inherits a minimal default environment.
        """
        child_env = {**(env or {}), **settings.env}
        return cls(
            StdioServerParameters(
                command=settings.command,
                args=settings.args,
                env=child_env or None,
            ),
            connect_attempts=settings.connect_attempts,
        )

    async def connect(self) -> None:
        """
        Spawn the tool host and complete the handshake.

        Raises:
            ToolHostConnectionLost: If every attempt fails
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.connect_attempts),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            retry=retry_if_exception_type(ToolHostConnectionLost),
            reraise=True,
        ):
            with attempt:
                await self._open_session()

    async def _open_session(self) -> None:
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(self.server_params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await session.initialize()
        except (McpError, *TRANSPORT_ERRORS) as e:
            await stack.aclose()
            logger.warning(
                "Tool host connection failed",
                command=self.server_params.command,
                error=str(e)
            )
            raise ToolHostConnectionLost(
                f"Cannot start tool host '{self.server_params.command}': {e}"
            ) from e

        self._exit_stack = stack
        self.session = session
        logger.info("Tool host connected", command=self.server_params.command)

    async def close(self) -> None:
        """Terminate the session and the child process."""
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
        self._exit_stack = None
        self.session = None

    async def __aenter__(self) -> "ToolHost":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _require_session(self) -> ClientSession:
        if self.session is None:
            raise ToolHostConnectionLost("Tool host is not connected")
        return self.session

    async def list_tools(self) -> list[ToolCatalogEntry]:
        """
        List every tool the host advertises, following pagination.

        Raises:
            ToolHostConnectionLost: If the host cannot enumerate tools
        """
        session = self._require_session()
        entries: list[ToolCatalogEntry] = []
        cursor: Optional[str] = None

        try:
            while True:
                if cursor is None:
                    response = await session.list_tools()
                else:
                    response = await session.list_tools(cursor=cursor)
                entries.extend(
                    ToolCatalogEntry(
                        name=tool.name,
                        description=tool.description or "",
                        parameter_schema=dict(tool.inputSchema or {}),
                    )
                    for tool in response.tools
                )
                cursor = response.nextCursor
                if not cursor:
                    break
        except (McpError, *TRANSPORT_ERRORS) as e:
            raise ToolHostConnectionLost(f"Cannot list tools: {e}") from e

        logger.info("Tools listed", tool_count=len(entries))
        return entries

    async def call_tool(self, name: str, arguments: str | dict[str, Any]) -> ToolResult:
        """
        Execute one tool call.

        Args:
            name: Tool name as advertised in the catalog
            arguments: JSON object, or the raw argument string of an LLM call

        Returns:
            The text content of the result

        Raises:
            MalformedToolArguments: If the arguments are not a JSON object
            ToolInvocationFailed: If the host reports an error
            UnsupportedToolContent: If the result holds non-text content
            ToolHostConnectionLost: If the transport is gone
        """
        if isinstance(arguments, str):
            arguments = parse_arguments(arguments)
        session = self._require_session()

        start_time = time.time()
        logger.debug("Calling tool", tool=name)

        try:
            result = await session.call_tool(name, arguments)
        except McpError as e:
            if e.error.code == CONNECTION_CLOSED:
                raise ToolHostConnectionLost(f"Tool host closed during '{name}'") from e
            raise ToolInvocationFailed(name, e.error.message) from e
        except TRANSPORT_ERRORS as e:
            raise ToolHostConnectionLost(f"Tool host unreachable during '{name}': {e}") from e

        if result.isError:
            message = "".join(
                block.text for block in result.content if isinstance(block, MCPTextContent)
            )
            raise ToolInvocationFailed(name, message or "unknown error")

        content = []
        for block in result.content:
            if not isinstance(block, MCPTextContent):
                raise UnsupportedToolContent(name, getattr(block, "type", type(block).__name__))
            content.append(TextContent(text=block.text))

        return ToolResult(
            tool_name=name,
            content=content,
            execution_time_ms=(time.time() - start_time) * 1000,
        )
