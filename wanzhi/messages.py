"""Conversation messages, tool calls and the LLM client protocol."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class ToolCall:
    """A tool invocation requested by the model; args are raw JSON or a mapping."""

    id: str = ""
    name: str = ""
    args: Any = None


def _raw_json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, str)):
        return json.loads(value) if value else None
    return value


def _tool_call_dict(call: ToolCall) -> dict[str, Any]:
    return {"id": call.id, "name": call.name, "args": _raw_json(call.args)}


@dataclass
class Message:
    """A chat message in the OpenAI chat-completion shape."""

    role: str
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form; empty tool_calls and tool_call_id are left out."""
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [_tool_call_dict(c) for c in self.tool_calls]
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        return out


@dataclass
class ToolDefinition:
    """A tool's name, purpose and JSON schema as offered to the model."""

    name: str
    description: str = ""
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class LLMReply:
    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0


class LLMClient(Protocol):
    """Produces the model's next reply for a conversation."""

    def next(
        self, messages: Sequence[Message], tools: Sequence[ToolDefinition] | None
    ) -> LLMReply: ...