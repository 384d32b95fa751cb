"""Tests for the generation client adapter."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from anthropic import APIError

from app.services.generation_client import (
    AnthropicGenerationClient,
    Conversation,
    GenerationTurn,
    ToolCall,
    ToolResult,
    to_anthropic_messages,
)
from app.utils import ExternalServiceUnavailable


def _conversation():
    conversation = Conversation("Prepare me for the Acme call")
    conversation.add_assistant(GenerationTurn(
        text="Looking up the account.",
        tool_calls=[ToolCall(id="tu_1", name="crm_account_lookup", arguments={"name": "Acme"})],
    ))
    conversation.add_tool_results([ToolResult("tu_1", "crm_account_lookup", {"accounts": []})])
    return conversation


def _client_returning(*blocks, stop_reason="end_turn"):
    client = AnthropicGenerationClient(api_key="test-key")
    client._client = MagicMock()
    client._client.messages.create = AsyncMock(
        return_value=SimpleNamespace(stop_reason=stop_reason, content=list(blocks))
    )
    return client


class TestMessageMapping:
    def test_roles_and_blocks(self):
        messages = to_anthropic_messages(_conversation())

        assert [m["role"] for m in messages] == ["user", "assistant", "user"]
        assert messages[0]["content"] == "Prepare me for the Acme call"
        assert messages[1]["content"][1] == {
            "type": "tool_use", "id": "tu_1", "name": "crm_account_lookup", "input": {"name": "Acme"},
        }
        assert messages[2]["content"][0]["type"] == "tool_result"
        assert messages[2]["content"][0]["tool_use_id"] == "tu_1"
        assert messages[2]["content"][0]["content"] == '{"accounts": []}'


class TestRunTurn:
    @pytest.mark.asyncio
    async def test_text_and_tool_blocks_are_parsed(self):
        client = _client_returning(
            SimpleNamespace(type="text", text="Checking."),
            SimpleNamespace(type="tool_use", id="tu_2", name="prep_notes_search", input={"query": "acme"}),
            stop_reason="tool_use",
        )
        turn = await client.run_turn("system", Conversation("hi"), tools=[{"name": "prep_notes_search"}])

        assert turn.text == "Checking."
        assert turn.tool_calls == [ToolCall(id="tu_2", name="prep_notes_search", arguments={"query": "acme"})]
        assert turn.stop_reason == "tool_use"

    @pytest.mark.asyncio
    async def test_tools_disabled_on_final_turn(self):
        client = _client_returning(SimpleNamespace(type="text", text="Done."))
        await client.run_turn("system", Conversation("hi"), tools=[{"name": "x"}], allow_tools=False)

        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["tool_choice"] == {"type": "none"}
        assert kwargs["system"] == "system"

    @pytest.mark.asyncio
    async def test_no_tools_sends_no_tool_fields(self):
        client = _client_returning(SimpleNamespace(type="text", text="Done."))
        await client.run_turn("system", Conversation("hi"))

        kwargs = client._client.messages.create.call_args.kwargs
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs

    @pytest.mark.asyncio
    async def test_api_error_maps_to_unavailable(self):
        client = AnthropicGenerationClient(api_key="test-key")
        client._client = MagicMock()
        client._client.messages.create = AsyncMock(side_effect=APIError(
            "overloaded", request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"), body=None
        ))

        with pytest.raises(ExternalServiceUnavailable):
            await client.run_turn("system", Conversation("hi"))

    @pytest.mark.asyncio
    async def test_missing_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        client = AnthropicGenerationClient(api_key=None)

        with pytest.raises(ExternalServiceUnavailable):
            await client.run_turn("system", Conversation("hi"))
