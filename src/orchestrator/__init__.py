"""Orchestrator.

Manages conversation state, interfaces with the LLM via LlamaIndex,
supplies the tool catalog and dispatches tool calls to the tool host.
"""

from orchestrator.llm import LLMError, LLMProvider, create_llm_provider
from orchestrator.conversation import ConversationState, render_system_prompt
from orchestrator.gateway import (
    CompletionFailed,
    Orchestrator,
    OrchestratorError,
    ToolCallLimitExceeded,
    ToolExecutionFailed,
)

__all__ = [
    "CompletionFailed",
    "ConversationState",
    "LLMError",
    "LLMProvider",
    "Orchestrator",
    "OrchestratorError",
    "ToolCallLimitExceeded",
    "ToolExecutionFailed",
    "create_llm_provider",
    "render_system_prompt",
]
