"""Shared utilities and models for the Mealie assistant."""

from shared.models import (
    ConversationMessage,
    LLMChoice,
    LLMResponse,
    MessageRole,
    TextContent,
    ToolCall,
    ToolCatalogEntry,
    ToolResult,
)
from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging

__all__ = [
    "ConversationMessage",
    "LLMChoice",
    "LLMResponse",
    "MessageRole",
    "TextContent",
    "ToolCall",
    "ToolCatalogEntry",
    "ToolResult",
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
