"""Tests for orchestrator components."""

from datetime import date

import pytest
from unittest.mock import AsyncMock, MagicMock

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
from tool_host.catalog import ToolCatalog
from tool_host.client import (
    MalformedToolArguments,
    ToolHost,
    ToolHostConnectionLost,
    ToolInvocationFailed,
)


def tool_call_response(*calls: ToolCall, content: str = None) -> LLMResponse:
    return LLMResponse(choices=[LLMChoice(content=content, tool_calls=list(calls))])


def text_response(*texts: str) -> LLMResponse:
    return LLMResponse(choices=[LLMChoice(content=text) for text in texts])


def make_tool_host(text: str = "ok") -> MagicMock:
    tool_host = MagicMock(spec=ToolHost)
    tool_host.call_tool = AsyncMock(return_value=ToolResult(
        tool_name="current_items",
        content=[TextContent(text=text)]
    ))
    return tool_host


CATALOG = ToolCatalog([
    ToolCatalogEntry(
        name="add_to_list",
        description="Add a new item to the shopping list",
        parameter_schema={
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        },
    ),
    ToolCatalogEntry(
        name="current_items",
        description="See what is in the shopping list currently",
        parameter_schema={"type": "object", "properties": {}},
    ),
])


def make_orchestrator(llm, tool_host, max_tool_iterations: int = 5):
    from orchestrator.conversation import ConversationState
    from orchestrator.gateway import Orchestrator

    return Orchestrator(
        llm_provider=llm,
        tool_host=tool_host,
        catalog=CATALOG,
        conversation=ConversationState("You are a helpful assistant."),
        max_tool_iterations=max_tool_iterations,
    )


class TestConversationState:
    """Tests for ConversationState."""

    def test_seeded_with_system_message(self):
        """Test that a new conversation holds only the system message."""
        from orchestrator.conversation import ConversationState

        conversation = ConversationState("You are helpful.")

        assert conversation.id is not None
        assert len(conversation) == 1
        assert conversation.snapshot()[0].role == MessageRole.SYSTEM
        assert conversation.snapshot()[0].content == "You are helpful."

    def test_append_preserves_order(self):
        """Test that messages keep insertion order."""
        from orchestrator.conversation import ConversationState

        conversation = ConversationState("System")
        conversation.append(ConversationMessage.user("Hello"))
        conversation.append(ConversationMessage.assistant("Hi there!"))

        roles = [m.role for m in conversation]
        assert roles == [MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT]

    def test_second_system_message_rejected(self):
        """Test that only the seed may be a system message."""
        from orchestrator.conversation import ConversationState

        conversation = ConversationState("System")

        with pytest.raises(ValueError):
            conversation.append(ConversationMessage.system("Another"))
        assert len(conversation) == 1

    def test_snapshot_is_a_copy(self):
        """Test that mutating a snapshot does not touch the transcript."""
        from orchestrator.conversation import ConversationState

        conversation = ConversationState("System")
        snapshot = conversation.snapshot()
        snapshot.append(ConversationMessage.user("sneaky"))

        assert len(conversation) == 1

    def test_system_prompt_has_date(self):
        """Test that the default prompt names today's date."""
        from orchestrator.conversation import render_system_prompt

        prompt = render_system_prompt(today=date(2024, 3, 9))

        assert prompt == "You are a helpful assistant. You know that today is 2024-03-09"

    def test_system_prompt_keeps_other_braces(self):
        """Test literal braces in a configured prompt survive rendering."""
        from orchestrator.conversation import render_system_prompt

        prompt = render_system_prompt(
            'Today is {today}. Reply like {"items": [...]} or {0}.',
            today=date(2024, 3, 9),
        )

        assert prompt == 'Today is 2024-03-09. Reply like {"items": [...]} or {0}.'


class TestLLMProvider:
    """Tests for LLM providers."""

    @pytest.mark.asyncio
    async def test_mock_provider(self):
        """Test mock LLM provider default response."""
        from orchestrator.llm import MockLLMProvider

        provider = MockLLMProvider()
        response = await provider.complete([ConversationMessage.user("Hello")])

        assert response.text == "This is a mock response."
        assert response.tool_calls == []
        assert len(provider.call_history) == 1

    @pytest.mark.asyncio
    async def test_mock_provider_with_preset_response(self):
        """Test mock provider returns queued responses in order."""
        from orchestrator.llm import MockLLMProvider

        provider = MockLLMProvider()
        provider.set_next_response(tool_call_response(
            ToolCall(id="call_1", tool_name="current_items", arguments_json="{}"),
            content="Let me check.",
        ))
        provider.set_next_response(text_response("Done"))

        first = await provider.complete([ConversationMessage.user("Use a tool")])
        second = await provider.complete([ConversationMessage.user("Again")])

        assert first.text == "Let me check."
        assert len(first.tool_calls) == 1
        assert second.text == "Done"

    def test_response_text_joins_choices(self):
        """Test that text from every choice is newline joined, skipping empty choices."""
        response = LLMResponse(choices=[
            LLMChoice(content="first"),
            LLMChoice(content=None),
            LLMChoice(content="second"),
        ])

        assert response.text == "first\nsecond"

    def test_parse_chat_response_reads_all_choices(self):
        """Test conversion of a raw completion with several choices."""
        from orchestrator.llm import parse_chat_response

        chat_response = MagicMock()
        chat_response.raw = {
            "choices": [
                {"message": {"content": "Checking", "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "add_to_list", "arguments": '{"name": "milk"}'},
                }]}},
                {"message": {"content": "the list", "tool_calls": None}},
            ],
            "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
        }

        response = parse_chat_response(chat_response)

        assert response.text == "Checking\nthe list"
        assert response.tool_calls == [
            ToolCall(id="call_1", tool_name="add_to_list", arguments_json='{"name": "milk"}')
        ]
        assert response.usage["total_tokens"] == 16

    def test_parse_chat_response_falls_back_to_message(self):
        """Test conversion when no raw completion is available."""
        from orchestrator.llm import parse_chat_response

        chat_response = MagicMock()
        chat_response.raw = None
        chat_response.message.content = "Hello"
        chat_response.message.additional_kwargs = {}

        response = parse_chat_response(chat_response)

        assert response.text == "Hello"
        assert response.tool_calls == []

    def test_create_llm_provider_factory(self):
        """Test LLM provider factory."""
        from orchestrator.llm import MockLLMProvider, create_llm_provider
        from shared.config import LLMSettings

        provider = create_llm_provider(LLMSettings(provider="mock"))

        assert isinstance(provider, MockLLMProvider)

    def test_invalid_provider_raises(self):
        """Test that invalid provider raises error."""
        from orchestrator.llm import create_llm_provider
        from shared.config import LLMSettings

        settings = LLMSettings(provider="invalid_provider")

        with pytest.raises(ValueError, match="Unsupported"):
            create_llm_provider(settings)


class TestOrchestrator:
    """Tests for the tool-calling loop."""

    @pytest.mark.asyncio
    async def test_plain_answer(self):
        """Test a turn without tools appends exactly the user and assistant messages."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(text_response("Hello! How can I help you?"))
        tool_host = make_tool_host()
        orchestrator = make_orchestrator(llm, tool_host)

        answer = await orchestrator.handle_utterance("Hello")

        assert answer == "Hello! How can I help you?"
        messages = orchestrator.conversation.snapshot()
        assert len(messages) == 3
        assert messages[1].role == MessageRole.USER
        assert messages[2].role == MessageRole.ASSISTANT
        assert messages[2].content == answer
        tool_host.call_tool.assert_not_called()

    @pytest.mark.asyncio
    async def test_choices_joined_into_answer(self):
        """Test text from every returned choice forms one newline-joined answer."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(text_response("Milk", "Eggs"))
        orchestrator = make_orchestrator(llm, make_tool_host())

        answer = await orchestrator.handle_utterance("What do I need?")

        assert answer == "Milk\nEggs"
        assert len(orchestrator.conversation) == 3
        assert orchestrator.conversation.snapshot()[-1].content == "Milk\nEggs"

    @pytest.mark.asyncio
    async def test_tool_schemas_sent_with_every_completion(self):
        """Test the catalog is offered to the LLM in function format."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        orchestrator = make_orchestrator(llm, make_tool_host())

        await orchestrator.handle_utterance("Hello")

        tools = llm.call_history[0]["tools"]
        assert [t["function"]["name"] for t in tools] == ["add_to_list", "current_items"]
        assert "parameters" in tools[0]["function"]
        assert "parameters" not in tools[1]["function"]

    @pytest.mark.asyncio
    async def test_tool_round_trip(self):
        """Test a tool call is executed and its result fed back to the LLM."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(tool_call_response(
            ToolCall(id="call_1", tool_name="current_items", arguments_json="{}")
        ))
        llm.set_next_response(text_response("You need milk."))
        tool_host = make_tool_host('[{"name": "milk", "checked": false}]')
        orchestrator = make_orchestrator(llm, tool_host)

        answer = await orchestrator.handle_utterance("What's on my list?")

        assert answer == "You need milk."
        tool_host.call_tool.assert_called_once_with("current_items", "{}")

        messages = orchestrator.conversation.snapshot()
        assert [m.role for m in messages] == [
            MessageRole.SYSTEM,
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.TOOL,
            MessageRole.ASSISTANT,
        ]
        assert messages[2].tool_calls[0].id == "call_1"
        assert messages[3].tool_call_id == "call_1"
        assert messages[3].content == '[{"name": "milk", "checked": false}]'

        # Second completion sees the tool result
        second_request = llm.call_history[1]["messages"]
        assert second_request[-1].role == MessageRole.TOOL

    @pytest.mark.asyncio
    async def test_multiple_tool_calls_run_in_order(self):
        """Test calls from one response are executed sequentially, in order."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(tool_call_response(
            ToolCall(id="call_1", tool_name="add_to_list", arguments_json='{"name": "milk"}'),
            ToolCall(id="call_2", tool_name="add_to_list", arguments_json='{"name": "eggs"}'),
        ))
        llm.set_next_response(text_response("Added both."))
        tool_host = make_tool_host("Successfully added")
        orchestrator = make_orchestrator(llm, tool_host)

        await orchestrator.handle_utterance("Add milk and eggs")

        called = [c.args for c in tool_host.call_tool.call_args_list]
        assert called == [
            ("add_to_list", '{"name": "milk"}'),
            ("add_to_list", '{"name": "eggs"}'),
        ]
        tool_ids = [
            m.tool_call_id for m in orchestrator.conversation
            if m.role == MessageRole.TOOL
        ]
        assert tool_ids == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_max_tool_iterations(self):
        """Test that a model which never stops calling tools is cut off."""
        from orchestrator.gateway import ToolCallLimitExceeded
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.complete = AsyncMock(return_value=tool_call_response(
            ToolCall(id="call_1", tool_name="current_items", arguments_json="{}")
        ))
        tool_host = make_tool_host()
        orchestrator = make_orchestrator(llm, tool_host)

        with pytest.raises(ToolCallLimitExceeded, match="Too many LLM requests"):
            await orchestrator.handle_utterance("Do something")

        assert llm.complete.call_count == 5
        assert tool_host.call_tool.call_count == 5

    @pytest.mark.asyncio
    async def test_configurable_ceiling(self):
        """Test the ceiling follows max_tool_iterations."""
        from orchestrator.gateway import ToolCallLimitExceeded
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.complete = AsyncMock(return_value=tool_call_response(
            ToolCall(id="call_1", tool_name="current_items")
        ))
        orchestrator = make_orchestrator(llm, make_tool_host(), max_tool_iterations=2)

        with pytest.raises(ToolCallLimitExceeded) as exc_info:
            await orchestrator.handle_utterance("Loop")

        assert exc_info.value.limit == 2
        assert llm.complete.call_count == 2

    @pytest.mark.asyncio
    async def test_answer_on_last_allowed_round(self):
        """Test a plain answer on the final round is still accepted."""
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        for i in range(4):
            llm.set_next_response(tool_call_response(
                ToolCall(id=f"call_{i}", tool_name="current_items")
            ))
        llm.set_next_response(text_response("Finally"))
        orchestrator = make_orchestrator(llm, make_tool_host())

        assert await orchestrator.handle_utterance("Go") == "Finally"
        assert len(llm.call_history) == 5

    @pytest.mark.asyncio
    async def test_tool_failure_aborts_turn(self):
        """Test a failing tool ends the turn and keeps the messages appended so far."""
        from orchestrator.gateway import ToolExecutionFailed
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(tool_call_response(
            ToolCall(id="call_1", tool_name="current_items"),
            ToolCall(id="call_2", tool_name="add_to_list", arguments_json='{"name": "x"}'),
        ))
        tool_host = make_tool_host()
        tool_host.call_tool.side_effect = [
            ToolResult(tool_name="current_items", content=[TextContent(text="[]")]),
            ToolInvocationFailed("add_to_list", "Mealie is down"),
        ]
        orchestrator = make_orchestrator(llm, tool_host)

        with pytest.raises(ToolExecutionFailed) as exc_info:
            await orchestrator.handle_utterance("Add x")

        assert exc_info.value.call.id == "call_2"
        assert isinstance(exc_info.value.cause, ToolInvocationFailed)
        messages = orchestrator.conversation.snapshot()
        assert [m.role for m in messages][1:] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.TOOL,
        ]
        assert len(llm.call_history) == 1

    @pytest.mark.asyncio
    async def test_malformed_arguments_abort_turn(self):
        """Test arguments that are not a JSON object surface as a tool failure."""
        from orchestrator.gateway import ToolExecutionFailed
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(tool_call_response(
            ToolCall(id="call_1", tool_name="add_to_list", arguments_json="[1,2,3]")
        ))
        tool_host = make_tool_host()
        tool_host.call_tool.side_effect = MalformedToolArguments("not an object")
        orchestrator = make_orchestrator(llm, tool_host)

        with pytest.raises(ToolExecutionFailed) as exc_info:
            await orchestrator.handle_utterance("Add")

        assert isinstance(exc_info.value.cause, MalformedToolArguments)

    @pytest.mark.asyncio
    async def test_connection_lost_aborts_turn(self):
        """Test a dead tool host surfaces as a tool failure."""
        from orchestrator.gateway import ToolExecutionFailed
        from orchestrator.llm import MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(tool_call_response(ToolCall(id="call_1", tool_name="current_items")))
        tool_host = make_tool_host()
        tool_host.call_tool.side_effect = ToolHostConnectionLost("gone")
        orchestrator = make_orchestrator(llm, tool_host)

        with pytest.raises(ToolExecutionFailed):
            await orchestrator.handle_utterance("List")

    @pytest.mark.asyncio
    async def test_llm_failure(self):
        """Test an LLM failure aborts the turn after the user message was recorded."""
        from orchestrator.gateway import CompletionFailed
        from orchestrator.llm import LLMError, MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(LLMError("rate limited"))
        orchestrator = make_orchestrator(llm, make_tool_host())

        with pytest.raises(CompletionFailed, match="rate limited"):
            await orchestrator.handle_utterance("Hello")

        assert len(orchestrator.conversation) == 2

    @pytest.mark.asyncio
    async def test_session_continues_after_failure(self):
        """Test the next utterance works after a failed turn."""
        from orchestrator.gateway import CompletionFailed
        from orchestrator.llm import LLMError, MockLLMProvider

        llm = MockLLMProvider()
        llm.set_next_response(LLMError("timeout"))
        llm.set_next_response(text_response("Back again"))
        orchestrator = make_orchestrator(llm, make_tool_host())

        with pytest.raises(CompletionFailed):
            await orchestrator.handle_utterance("Hello")
        answer = await orchestrator.handle_utterance("Hello?")

        assert answer == "Back again"
        assert len(orchestrator.conversation) == 4

    @pytest.mark.asyncio
    async def test_create_fetches_catalog_once(self):
        """Test session start lists the tools and seeds the prompt."""
        from orchestrator.gateway import Orchestrator
        from orchestrator.llm import MockLLMProvider

        tool_host = make_tool_host()
        tool_host.list_tools = AsyncMock(return_value=list(CATALOG.entries))

        orchestrator = await Orchestrator.create(
            llm_provider=MockLLMProvider(),
            tool_host=tool_host,
            system_prompt="Be brief.",
        )
        await orchestrator.handle_utterance("One")
        await orchestrator.handle_utterance("Two")

        tool_host.list_tools.assert_awaited_once()
        assert orchestrator.catalog.names == ["add_to_list", "current_items"]
        assert orchestrator.conversation.snapshot()[0].content == "Be brief."

    @pytest.mark.asyncio
    async def test_malformed_completion_fails_turn(self):
        """Test a completion with an incomplete tool call is a failed turn."""
        from orchestrator.gateway import CompletionFailed
        from orchestrator.llm import LLMError, OpenAIProvider
        from shared.config import LLMSettings

        chat_response = MagicMock()
        chat_response.raw = {"choices": [{"message": {"content": None, "tool_calls": [{
            "id": None,
            "type": "function",
            "function": {"name": "current_items", "arguments": "{}"},
        }]}}]}
        provider = OpenAIProvider(LLMSettings(provider="openai", api_key="test"))
        provider._llm = MagicMock()
        provider._llm.achat = AsyncMock(return_value=chat_response)
        tool_host = make_tool_host()
        orchestrator = make_orchestrator(provider, tool_host)

        with pytest.raises(CompletionFailed) as exc_info:
            await orchestrator.handle_utterance("What's on my list?")

        assert isinstance(exc_info.value.cause, LLMError)
        tool_host.call_tool.assert_not_called()
        assert len(orchestrator.conversation) == 2
