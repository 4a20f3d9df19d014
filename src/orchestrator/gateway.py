"""Tool-calling orchestration loop.

The orchestrator coordinates, for one session:
- The conversation transcript
- Completion requests to the LLM
- Dispatch of LLM-requested tool calls to the tool host
- The iteration ceiling that bounds each turn
"""

import uuid
from typing import Optional

from shared.logging import get_logger
from shared.models import ConversationMessage, LLMResponse, ToolCall
from tool_host.catalog import ToolCatalog
from tool_host.client import ToolHost, ToolHostError
from orchestrator.conversation import ConversationState, render_system_prompt
from orchestrator.llm import LLMError, LLMProvider

logger = get_logger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 5


class OrchestratorError(Exception):
    """A turn failed."""
    pass


class ToolCallLimitExceeded(OrchestratorError):
    """The LLM kept requesting tools past the iteration ceiling."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Too many LLM requests: tool calls still pending after {limit} rounds")
        self.limit = limit


class ToolExecutionFailed(OrchestratorError):
    """A tool call could not be executed."""

    def __init__(self, call: ToolCall, cause: ToolHostError) -> None:
        super().__init__(f"Tool call '{call.tool_name}' ({call.id}) failed: {cause}")
        self.call = call
        self.cause = cause


class CompletionFailed(OrchestratorError):
    """The LLM request failed."""

    def __init__(self, cause: LLMError) -> None:
        super().__init__(str(cause))
        self.cause = cause


class Orchestrator:
    """
    Drives one conversation with tool calling.

    Each ``handle_utterance`` call is a turn: the LLM is asked for a
    completion; while it requests tools, they are executed in order and
    their results fed back, until it answers in plain text or the
    iteration ceiling is reached.

    Turns must not overlap. Messages appended before a failure stay in
    the transcript.
    """

    def __init__(
        self,
        llm_provider: LLMProvider,
        tool_host: ToolHost,
        catalog: ToolCatalog,
        conversation: Optional[ConversationState] = None,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            llm_provider: LLM provider for completions
            tool_host: Connected tool host executing the calls
            catalog: Tool catalog snapshot for this session
            conversation: Transcript; a fresh one with today's date if omitted
            max_tool_iterations: Completion rounds allowed per turn
        """
        self.llm = llm_provider
        self.tool_host = tool_host
        self.catalog = catalog
        self.conversation = conversation or ConversationState(render_system_prompt())
        self.max_tool_iterations = max_tool_iterations
        self._tools = catalog.function_schemas()

    @classmethod
    async def create(
        cls,
        llm_provider: LLMProvider,
        tool_host: ToolHost,
        system_prompt: Optional[str] = None,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS
    ) -> "Orchestrator":
        """Start a session: fetch the tool catalog once and seed the transcript."""
        catalog = await ToolCatalog.fetch(tool_host)
        conversation = ConversationState(system_prompt or render_system_prompt())
        return cls(
            llm_provider=llm_provider,
            tool_host=tool_host,
            catalog=catalog,
            conversation=conversation,
            max_tool_iterations=max_tool_iterations,
        )

    async def handle_utterance(self, text: str) -> str:
        """
        Resolve one user utterance into the assistant's final answer.

        Raises:
            ToolCallLimitExceeded: If tool calls are still requested after
                ``max_tool_iterations`` rounds
            ToolExecutionFailed: If a tool call fails
            CompletionFailed: If the LLM request fails
        """
        turn_id = str(uuid.uuid4())
        log = logger.bind(conversation_id=self.conversation.id, turn_id=turn_id)
        log.info("Processing utterance", length=len(text))

        self.conversation.append(ConversationMessage.user(text))
        remaining = self.max_tool_iterations

        while True:
            if remaining <= 0:
                log.warning("Max tool iterations reached", limit=self.max_tool_iterations)
                raise ToolCallLimitExceeded(self.max_tool_iterations)

            response = await self._complete()
            answer, tool_calls = self._collect(response)

            if not tool_calls:
                self.conversation.append(ConversationMessage.assistant(answer))
                log.info("Turn complete", rounds=self.max_tool_iterations - remaining + 1)
                return answer

            log.debug(
                "LLM requested tool calls",
                count=len(tool_calls),
                iteration=self.max_tool_iterations - remaining + 1
            )
            await self._run_tool_calls(answer, tool_calls)
            remaining -= 1

    async def _complete(self) -> LLMResponse:
        try:
            return await self.llm.complete(
                messages=self.conversation.snapshot(),
                tools=self._tools or None
            )
        except LLMError as e:
            logger.error("Turn aborted by LLM failure", error=str(e))
            raise CompletionFailed(e) from e

    @staticmethod
    def _collect(response: LLMResponse) -> tuple[str, list[ToolCall]]:
        """Text of every choice joined by newlines, and all tool calls."""
        return response.text, response.tool_calls

    async def _run_tool_calls(self, answer: str, tool_calls: list[ToolCall]) -> None:
        """Record the assistant's request, then execute each call in order."""
        self.conversation.append(ConversationMessage.assistant(answer, tool_calls))

        for call in tool_calls:
            try:
                result = await self.tool_host.call_tool(call.tool_name, call.arguments_json)
            except ToolHostError as e:
                logger.error(
                    "Tool execution failed",
                    tool=call.tool_name,
                    call_id=call.id,
                    error=str(e)
                )
                raise ToolExecutionFailed(call, e) from e

            logger.info(
                "Tool executed",
                tool=call.tool_name,
                call_id=call.id,
                execution_time_ms=round(result.execution_time_ms, 1)
            )
            self.conversation.append(ConversationMessage.tool(call.id, result.text))
