"""Core data models for the Mealie assistant.

This module defines the structures that cross component boundaries:
conversation messages, tool calls, the tool catalog, tool results and
LLM responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Role of a conversation message."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """
    An LLM-issued request to invoke a named tool.

    Arguments are kept as the raw JSON string the LLM produced; they are
    parsed only when the call is dispatched to the tool host.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Call identifier assigned by the LLM")
    tool_name: str
    arguments_json: str = Field(default="{}")

    def to_openai(self) -> dict[str, Any]:
        """Return the OpenAI function-calling representation."""
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.tool_name,
                "arguments": self.arguments_json,
            },
        }


class ConversationMessage(BaseModel):
    """A single message in a conversation. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    role: MessageRole
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_utcnow)

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Optional[list[ToolCall]] = None
    ) -> "ConversationMessage":
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls or ()),
        )

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "ConversationMessage":
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id)


class ToolCatalogEntry(BaseModel):
    """A tool advertised by the tool host."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    parameter_schema: dict[str, Any] = Field(default_factory=dict)


class TextContent(BaseModel):
    """Plain-text content block, the only kind a tool result may carry."""
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """
    Result of a tool execution.

    Contains the ordered text blocks returned by the tool host.
    """
    tool_name: str
    content: list[TextContent] = Field(default_factory=list)
    execution_time_ms: float = 0

    @property
    def text(self) -> str:
        """Concatenation of all text blocks."""
        return "".join(block.text for block in self.content)


class LLMChoice(BaseModel):
    """One completion choice: optional text and zero or more tool calls."""
    content: Optional[str] = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class LLMResponse(BaseModel):
    """Response from the LLM layer."""
    choices: list[LLMChoice] = Field(default_factory=list)
    usage: dict[str, int] = Field(default_factory=dict)

    @property
    def text(self) -> str:
        """Text fragments of every choice, newline separated."""
        return "\n".join(c.content for c in self.choices if c.content is not None)

    @property
    def tool_calls(self) -> list[ToolCall]:
        """Tool calls of every choice, in order."""
        return [call for choice in self.choices for call in choice.tool_calls]
