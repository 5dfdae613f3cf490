"""The ReAct agent loop: ask the model, run the tools it asks for, repeat."""

from __future__ import annotations

import dataclasses
import enum
import json
import queue
import threading
import time
from collections.abc import Iterable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Protocol

from wanzhi.events import AgentEvent, Handler, MultiHandler, StreamHandler, ToolTrace, TraceHandler
from wanzhi.memory import BufferMemory, Memory
from wanzhi.messages import LLMClient, Message, ToolCall, ToolDefinition
from wanzhi.middleware import Middleware, chain
from wanzhi.tool_types import ToolError

DEFAULT_SYSTEM_PROMPT = "你是企业 API 助手，只能输出结构化汇总，不泄露原始内部数据。"
_EMPTY_SUMMARY = "结构化汇总结果为空。"
_TRACE_HEADER = "工具调用轨迹:"
_PREVIEW_LIMIT = 100


class ToolDispatcher(Protocol):
    """Routes a tool name and its arguments to the tool."""

    def dispatch(self, name: str, args: Any) -> Any: ...

    def has(self, name: str) -> bool: ...


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    raise TypeError(f"unsupported type {type(value).__name__}")


def _compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=_json_default)


def encode_tool_result(result: Any, error: BaseException | None) -> str:
    """Encode a tool's outcome as JSON; failures become {"error": ...}."""
    if error is not None:
        return _compact_json({"error": str(error)})
    try:
        return _compact_json(result)
    except (TypeError, ValueError) as exc:
        return _compact_json({"error": f"marshal tool result failed: {exc}"})


def short_preview(text: str, limit: int) -> str:
    """Flatten text to one line and cut it to limit characters."""
    flat = text.strip().replace("\n", " ")
    if limit <= 0 or len(flat) <= limit:
        return flat
    return flat[:limit] + "..."


def attach_tool_trace_summary(summary: str, traces: Sequence[ToolTrace]) -> str:
    """Append a numbered tool-call trace section to the summary."""
    if not traces:
        return summary
    parts = []
    head = summary.strip()
    if head:
        parts.append(head + "\n\n")
    parts.append(_TRACE_HEADER + "\n")
    for i, t in enumerate(traces, start=1):
        status = "ok" if t.success else "error"
        parts.append(
            f"{i}. step={t.step} tool={t.tool} status={status} "
            f"latency={t.duration_ms}ms preview={t.preview}\n"
        )
    return "".join(parts).strip()


@dataclasses.dataclass
class _ToolResult:
    call_id: str
    content: str
    trace: ToolTrace


class AgentEngine:
    """Runs the agent loop for up to max_steps model calls.

    An instance keeps one conversation memory, so it serves one run at a time.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        dispatcher: ToolDispatcher,
        *,
        max_steps: int = 10,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        memory: Memory | None = None,
        handlers: Iterable[Handler] = (),
        middlewares: Iterable[Middleware] = (),
    ) -> None:
        self._llm = llm_client
        self._dispatcher = dispatcher
        self._max_steps = max_steps if max_steps > 0 else 10
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self._memory: Memory = memory if memory is not None else BufferMemory(64)
        self._handlers = list(handlers)
        self._catalog: list[ToolDefinition] = []
        mws = list(middlewares)
        self._dispatch_fn = chain(*mws)(dispatcher.dispatch) if mws else dispatcher.dispatch

    def set_tool_catalog(self, catalog: Iterable[ToolDefinition] | None) -> None:
        """Set the tools offered to the model; None or empty clears them."""
        self._catalog = list(catalog or [])

    def run(self, user_query: str) -> str:
        """Run the loop and return the summary with the tool-call trace appended."""
        summary, traces = self.run_with_trace(user_query)
        return attach_tool_trace_summary(summary, traces)

    def run_with_trace(self, user_query: str) -> tuple[str, list[ToolTrace]]:
        tracer = TraceHandler()
        summary = self._run_core(user_query, self._with_extras(tracer))
        return summary, tracer.traces

    def run_stream(self, user_query: str) -> Iterator[AgentEvent]:
        """Start a run in the background and yield its events as they arrive."""
        events: queue.Queue[Any] = queue.Queue()
        done = object()

        def worker() -> None:
            try:
                self._run_core(user_query, self._with_extras(StreamHandler(events)))
            except Exception:
                pass  # the failure has already been emitted as an error event
            finally:
                events.put(done)

        threading.Thread(target=worker, daemon=True).start()

        def drain() -> Iterator[AgentEvent]:
            while (item := events.get()) is not done:
                yield item

        return drain()

    def _with_extras(self, primary: Handler) -> Handler:
        if self._handlers:
            return MultiHandler(primary, *self._handlers)
        return primary

    def _run_core(self, user_query: str, handler: Handler) -> str:
        mem = self._memory
        mem.reset()
        mem.append(Message(role="system", content=self._system_prompt))
        mem.append(Message(role="user", content=user_query))

        for step in range(1, self._max_steps + 1):
            handler.on_step_start(step)
            handler.on_llm_start(step)
            try:
                reply = self._llm.next(mem.messages(), list(self._catalog) or None)
            except Exception as exc:
                error = RuntimeError(f"llm next failed: {exc}")
                handler.on_error(step, error)
                raise error from exc
            handler.on_llm_end(step, reply)

            if not reply.tool_calls:
                content = reply.content or _EMPTY_SUMMARY
                handler.on_complete(content, None)
                return content

            mem.append(Message(role="assistant", tool_calls=list(reply.tool_calls)))

            for call in reply.tool_calls:
                if not self._dispatcher.has(call.name):
                    error = ToolError(f"unknown tool: {call.name}")
                    handler.on_error(step, error)
                    raise error

            for result in self._dispatch_tools(reply.tool_calls, step, handler):
                mem.append(Message(role="tool", tool_call_id=result.call_id, content=result.content))

        message = f"agent stopped: reached max steps ({self._max_steps})"
        handler.on_complete(message, None)
        return message

    def _invoke(self, call: ToolCall, step: int) -> _ToolResult:
        start = time.perf_counter()
        out: Any = None
        error: Exception | None = None
        try:
            out = self._dispatch_fn(call.name, call.args)
        except Exception as exc:
            error = exc
        duration_ms = int((time.perf_counter() - start) * 1000)
        content = encode_tool_result(out, error)
        trace = ToolTrace(
            step=step,
            tool=call.name,
            success=error is None,
            duration_ms=duration_ms,
            preview=short_preview(content, _PREVIEW_LIMIT),
        )
        return _ToolResult(call_id=call.id, content=content, trace=trace)

    def _dispatch_tools(
        self, calls: Sequence[ToolCall], step: int, handler: Handler
    ) -> list[_ToolResult]:
        """Run one call directly, several concurrently; failures are encoded, not raised."""
        if len(calls) == 1:
            handler.on_tool_start(step, calls[0])
            result = self._invoke(calls[0], step)
            handler.on_tool_end(step, result.trace)
            return [result]

        for call in calls:
            handler.on_tool_start(step, call)
        with ThreadPoolExecutor(max_workers=len(calls)) as pool:
            results = list(pool.map(lambda c: self._invoke(c, step), calls))
        for result in results:
            handler.on_tool_end(step, result.trace)
        return results