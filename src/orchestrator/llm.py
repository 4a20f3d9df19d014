"""LLM Integration Layer using LlamaIndex.

Supports multiple LLM providers via LlamaIndex-compatible packages:
- OpenAI (and OpenAI-compatible endpoints through ``api_base``)
- Azure OpenAI

The LLM has no direct tool host or Mealie access.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Optional

from pydantic import ValidationError

from shared.config import LLMSettings
from shared.logging import get_logger
from shared.models import ConversationMessage, LLMChoice, LLMResponse, MessageRole, ToolCall

logger = get_logger(__name__)

DEFAULT_API_BASE = "https://api.openai.com/v1"


class LLMError(Exception):
    """Completion request failed (transport, auth, rate limit, bad response)."""
    pass


class LLMConfigError(ValueError):
    """LLM provider cannot be built from the given settings."""
    pass


def _field(obj: Any, name: str) -> Any:
    """Read a field from an SDK object or its dict form."""
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _parse_tool_call(raw: Any) -> ToolCall:
    function = _field(raw, "function")
    return ToolCall(
        id=_field(raw, "id"),
        tool_name=_field(function, "name"),
        arguments_json=_field(function, "arguments") or "",
    )


def _parse_choice(message: Any) -> LLMChoice:
    return LLMChoice(
        content=_field(message, "content"),
        tool_calls=[_parse_tool_call(tc) for tc in _field(message, "tool_calls") or []],
    )


def parse_chat_response(response: Any) -> LLMResponse:
    """
    Convert a LlamaIndex chat response into an ``LLMResponse``.

    Reads every choice from the raw completion when it is available;
    otherwise falls back to the single message LlamaIndex extracted.
    """
    raw = response.raw
    choices = _field(raw, "choices") if raw is not None else None

    if choices:
        parsed = [_parse_choice(_field(choice, "message")) for choice in choices]
    else:
        message = response.message
        parsed = [LLMChoice(
            content=message.content,
            tool_calls=[
                _parse_tool_call(tc)
                for tc in message.additional_kwargs.get("tool_calls") or []
            ],
        )]

    usage: dict[str, int] = {}
    raw_usage = _field(raw, "usage") if raw is not None else None
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = _field(raw_usage, key) if raw_usage is not None else None
        if isinstance(value, int):
            usage[key] = value

    return LLMResponse(choices=parsed, usage=usage)


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    LLM Integration Rules:
    - LLM receives the full transcript and the session's tool catalog
    - LLM outputs text, tool calls, or both
    - LLM must not access APIs directly
    """

    @abstractmethod
    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history
            tools: Available tools in OpenAI function format

        Returns:
            LLM response with every choice's content and tool calls

        Raises:
            LLMError: If the request fails
        """
        pass


class OpenAIProvider(LLMProvider):
    """OpenAI LLM provider using LlamaIndex."""

    ROLE_MAP = {
        MessageRole.SYSTEM: "system",
        MessageRole.USER: "user",
        MessageRole.ASSISTANT: "assistant",
        MessageRole.TOOL: "tool",
    }

    def __init__(self, settings: LLMSettings) -> None:
        self.settings = settings
        self._llm = None

    def _get_llm(self):
        """Lazy initialization of LlamaIndex LLM."""
        if self._llm is None:
            from llama_index.llms.openai import OpenAI

            self._llm = OpenAI(
                model=self.settings.model,
                api_key=self.settings.api_key,
                api_base=self.settings.api_base or DEFAULT_API_BASE,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
        return self._llm

    def _convert_messages(self, messages: list[ConversationMessage]) -> list:
        """Convert internal messages to LlamaIndex format."""
        from llama_index.core.llms import ChatMessage, MessageRole as LlamaRole

        result = []
        for msg in messages:
            additional_kwargs: dict[str, Any] = {}
            if msg.tool_calls:
                additional_kwargs["tool_calls"] = [call.to_openai() for call in msg.tool_calls]
            if msg.tool_call_id:
                additional_kwargs["tool_call_id"] = msg.tool_call_id

            result.append(ChatMessage(
                role=LlamaRole(self.ROLE_MAP[msg.role]),
                content=msg.content,
                additional_kwargs=additional_kwargs,
            ))

        return result

    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None
    ) -> LLMResponse:
        """Generate completion through LlamaIndex."""
        llm = self._get_llm()
        chat_messages = self._convert_messages(messages)

        try:
            if tools:
                response = await llm.achat(chat_messages, tools=tools)
            else:
                response = await llm.achat(chat_messages)
        except Exception as e:
            logger.error("LLM completion failed", provider=self.settings.provider, error=str(e))
            raise LLMError(f"Completion failed: {e}") from e

        try:
            return parse_chat_response(response)
        except (ValidationError, AttributeError, TypeError) as e:
            logger.error("Malformed LLM response", provider=self.settings.provider, error=str(e))
            raise LLMError(f"Malformed completion: {e}") from e


class AzureOpenAIProvider(OpenAIProvider):
    """Azure OpenAI LLM provider using LlamaIndex."""

    def _get_llm(self):
        """Lazy initialization of LlamaIndex LLM."""
        if self._llm is None:
            from llama_index.llms.azure_openai import AzureOpenAI

            self._llm = AzureOpenAI(
                model=self.settings.model,
                engine=self.settings.deployment_name or self.settings.model,
                api_key=self.settings.api_key,
                azure_endpoint=self.settings.api_base,
                api_version=self.settings.api_version,
                temperature=self.settings.temperature,
                max_tokens=self.settings.max_tokens,
            )
        return self._llm


class MockLLMProvider(LLMProvider):
    """Mock provider returning scripted responses, for tests and dry runs."""

    def __init__(self, settings: Optional[LLMSettings] = None) -> None:
        self.settings = settings
        self.call_history: list[dict[str, Any]] = []
        self._responses: deque[LLMResponse | Exception] = deque()

    def set_next_response(self, response: LLMResponse | Exception) -> None:
        """Queue a response (or an exception to raise) for a later call."""
        self._responses.append(response)

    async def complete(
        self,
        messages: list[ConversationMessage],
        tools: Optional[list[dict[str, Any]]] = None
    ) -> LLMResponse:
        """Return the next scripted response."""
        self.call_history.append({
            "messages": list(messages),
            "tools": tools,
        })

        if self._responses:
            response = self._responses.popleft()
            if isinstance(response, Exception):
                raise response
            return response

        return LLMResponse(
            choices=[LLMChoice(content="This is a mock response.")],
            usage={"prompt_tokens": 10, "completion_tokens": 5}
        )


def create_llm_provider(settings: LLMSettings) -> LLMProvider:
    """
    Factory function to create appropriate LLM provider.

    Supports:
    - openai: OpenAI API or a compatible endpoint
    - azure_openai: Azure OpenAI Service
    - mock: Mock provider for testing

    Raises:
        LLMConfigError: If provider is not supported
    """
    providers = {
        "openai": OpenAIProvider,
        "azure_openai": AzureOpenAIProvider,
        "mock": MockLLMProvider,
    }

    provider_class = providers.get(settings.provider)
    if not provider_class:
        raise LLMConfigError(
            f"Unsupported LLM provider: {settings.provider}. "
            f"Supported: {list(providers.keys())}"
        )

    logger.info("Creating LLM provider", provider=settings.provider, model=settings.model)
    return provider_class(settings)
