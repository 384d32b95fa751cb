"""
Generation Client - Provider-neutral tool-calling text generation

The pipeline talks to a GenerationClient through a small conversation
model (user text, assistant turns with tool calls, tool results). The
Anthropic adapter maps it onto the Messages API.
"""
from typing import List, Dict, Any, Optional, Protocol, Union
from dataclasses import dataclass, field
import os
import json
import logging

from anthropic import AsyncAnthropic, APIError

from app.utils import ExternalServiceUnavailable, generation_with_timeout

logger = logging.getLogger(__name__)

PREP_MODEL = os.getenv("PREP_MODEL", "claude-sonnet-4-20250514")


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResult:
    tool_call_id: str
    name: str
    content: Dict[str, Any]


@dataclass
class GenerationTurn:
    """One response of the generation service: final text or tool requests."""
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    stop_reason: Optional[str] = None


@dataclass
class UserMessage:
    text: str


Entry = Union[UserMessage, GenerationTurn, List[ToolResult]]


class Conversation:
    """Ordered exchange with the generation service."""

    def __init__(self, prompt: Optional[str] = None):
        self.entries: List[Entry] = []
        if prompt:
            self.add_user(prompt)

    def add_user(self, text: str) -> None:
        self.entries.append(UserMessage(text))

    def add_assistant(self, turn: GenerationTurn) -> None:
        self.entries.append(turn)

    def add_tool_results(self, results: List[ToolResult]) -> None:
        self.entries.append(list(results))


class GenerationClient(Protocol):
    async def run_turn(
        self,
        system: str,
        conversation: Conversation,
        tools: Optional[List[Dict[str, Any]]] = None,
        allow_tools: bool = True
    ) -> GenerationTurn:
        ...


def to_anthropic_messages(conversation: Conversation) -> List[Dict[str, Any]]:
    messages = []
    for entry in conversation.entries:
        if isinstance(entry, UserMessage):
            messages.append({"role": "user", "content": entry.text})
        elif isinstance(entry, GenerationTurn):
            content: List[Dict[str, Any]] = []
            if entry.text:
                content.append({"type": "text", "text": entry.text})
            for call in entry.tool_calls:
                content.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.arguments})
            messages.append({"role": "assistant", "content": content})
        else:
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.tool_call_id,
                        "content": json.dumps(result.content, default=str),
                    }
                    for result in entry
                ],
            })
    return messages


class AnthropicGenerationClient:
    """GenerationClient backed by Claude."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = PREP_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.4
    ):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client: Optional[AsyncAnthropic] = None

    @property
    def client(self) -> AsyncAnthropic:
        if self._client is None:
            if not self.api_key:
                raise ExternalServiceUnavailable("generation", "ANTHROPIC_API_KEY not set")
            self._client = AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def run_turn(
        self,
        system: str,
        conversation: Conversation,
        tools: Optional[List[Dict[str, Any]]] = None,
        allow_tools: bool = True
    ) -> GenerationTurn:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system,
            "messages": to_anthropic_messages(conversation),
        }
        if tools:
            kwargs["tools"] = tools
            if not allow_tools:
                kwargs["tool_choice"] = {"type": "none"}

        try:
            response = await generation_with_timeout(self.client.messages.create(**kwargs))
        except APIError as e:
            logger.error(f"Generation call failed: {e}")
            raise ExternalServiceUnavailable("generation", str(e))

        turn = GenerationTurn(stop_reason=response.stop_reason)
        for block in response.content:
            if block.type == "text":
                turn.text += block.text
            elif block.type == "tool_use":
                turn.tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))

        logger.info(
            f"Generation turn finished, stop_reason: {response.stop_reason}, "
            f"tool_calls: {len(turn.tool_calls)}"
        )
        return turn
