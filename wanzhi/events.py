"""Agent run events and the handlers that observe an agent run."""

from __future__ import annotations

import enum
import queue
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from wanzhi.messages import LLMReply, ToolCall


class EventKind(enum.StrEnum):
    STEP_START = "agent.step.start"
    TOOL_END = "agent.tool.end"
    LLM_START = "agent.llm.start"
    LLM_END = "agent.llm.end"
    COMPLETE = "agent.complete"
    ERROR = "agent.error"


@dataclass
class AgentEvent:
    """One event of a streamed agent run."""

    kind: EventKind
    step: int = 0
    tool: str = ""
    content: str = ""
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form; zero and empty fields are left out."""
        out: dict[str, Any] = {"kind": self.kind.value}
        if self.step:
            out["step"] = self.step
        if self.tool:
            out["tool"] = self.tool
        if self.content:
            out["content"] = self.content
        if self.data is not None:
            out["data"] = self.data
        return out


@dataclass
class ToolTrace:
    """Timing and outcome of one tool call."""

    step: int = 0
    tool: str = ""
    success: bool = False
    duration_ms: int = 0
    preview: str = ""


class Handler:
    """Receives callbacks during an agent run; every callback does nothing by default."""

    def on_step_start(self, step: int) -> None:
        pass

    def on_llm_start(self, step: int) -> None:
        pass

    def on_llm_end(self, step: int, reply: LLMReply) -> None:
        pass

    def on_tool_start(self, step: int, call: ToolCall) -> None:
        pass

    def on_tool_end(self, step: int, trace: ToolTrace) -> None:
        pass

    def on_complete(self, summary: str, traces: Sequence[ToolTrace] | None) -> None:
        pass

    def on_error(self, step: int, error: BaseException | None) -> None:
        pass


class MultiHandler(Handler):
    """Forwards every callback to each of its handlers, in order."""

    def __init__(self, *handlers: Handler) -> None:
        self._handlers = list(handlers)

    def on_step_start(self, step: int) -> None:
        for h in self._handlers:
            h.on_step_start(step)

    def on_llm_start(self, step: int) -> None:
        for h in self._handlers:
            h.on_llm_start(step)

    def on_llm_end(self, step: int, reply: LLMReply) -> None:
        for h in self._handlers:
            h.on_llm_end(step, reply)

    def on_tool_start(self, step: int, call: ToolCall) -> None:
        for h in self._handlers:
            h.on_tool_start(step, call)

    def on_tool_end(self, step: int, trace: ToolTrace) -> None:
        for h in self._handlers:
            h.on_tool_end(step, trace)

    def on_complete(self, summary: str, traces: Sequence[ToolTrace] | None) -> None:
        for h in self._handlers:
            h.on_complete(summary, traces)

    def on_error(self, step: int, error: BaseException | None) -> None:
        for h in self._handlers:
            h.on_error(step, error)


class TraceHandler(Handler):
    """Collects the trace of every finished tool call."""

    def __init__(self) -> None:
        self.traces: list[ToolTrace] = []

    def on_tool_end(self, step: int, trace: ToolTrace) -> None:
        self.traces.append(trace)


class StreamHandler(Handler):
    """Puts agent events on a queue as they happen."""

    def __init__(self, queue: queue.Queue[Any]) -> None:
        self._queue = queue

    def _emit(self, event: AgentEvent) -> None:
        self._queue.put(event)

    def on_step_start(self, step: int) -> None:
        self._emit(AgentEvent(kind=EventKind.STEP_START, step=step))

    def on_llm_start(self, step: int) -> None:
        self._emit(AgentEvent(kind=EventKind.LLM_START, step=step))

    def on_llm_end(self, step: int, reply: LLMReply) -> None:
        self._emit(AgentEvent(kind=EventKind.LLM_END, step=step))

    def on_tool_end(self, step: int, trace: ToolTrace) -> None:
        data = {
            "tool": trace.tool,
            "success": trace.success,
            "duration_ms": trace.duration_ms,
            "preview": trace.preview,
        }
        self._emit(AgentEvent(kind=EventKind.TOOL_END, step=step, tool=trace.tool, data=data))

    def on_complete(self, summary: str, traces: Sequence[ToolTrace] | None) -> None:
        self._emit(AgentEvent(kind=EventKind.COMPLETE, content=summary))

    def on_error(self, step: int, error: BaseException | None) -> None:
        self._emit(AgentEvent(kind=EventKind.ERROR, step=step, content=str(error)))