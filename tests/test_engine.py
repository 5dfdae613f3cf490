import json
import threading
import time

import pytest

from wanzhi.engine import (
    DEFAULT_SYSTEM_PROMPT,
    AgentEngine,
    attach_tool_trace_summary,
    encode_tool_result,
    short_preview,
)
from wanzhi.events import EventKind, Handler, ToolTrace
from wanzhi.memory import BufferMemory
from wanzhi.messages import LLMReply, ToolCall, ToolDefinition
from wanzhi.middleware import RetryConfig, retry_middleware
from wanzhi.query_tool import parse_trace_from_summary
from wanzhi.tool_types import SearchAPIItem, SearchAPIResult, ToolError


def args(value):
    return json.dumps(value).encode()


class ScriptedLLM:
    def __init__(self, replies):
        self.replies = list(replies)
        self.idx = 0
        self.seen = []

    def next(self, messages, tools):
        self.seen.append(list(messages))
        if self.idx >= len(self.replies):
            return LLMReply(content="")
        out = self.replies[self.idx]
        self.idx += 1
        return out


class CapturingLLM:
    def __init__(self):
        self.last_tools = None
        self.last_messages = None

    def next(self, messages, tools):
        self.last_tools = list(tools or [])
        self.last_messages = list(messages)
        return LLMReply(content="ok")


class FailingLLM:
    def next(self, messages, tools):
        raise RuntimeError("mock LLM error")


class MockDispatcher:
    def __init__(self, results):
        self.results = results
        self.calls = []
        self.lock = threading.Lock()

    def dispatch(self, name, raw):
        with self.lock:
            self.calls.append(name)
        return self.results.get(name, {"ok": True})

    def has(self, name):
        return name in self.results


class ConcurrencyTrackingDispatcher:
    def __init__(self, inner):
        self.inner = inner
        self.lock = threading.Lock()
        self.concurrent = 0
        self.max_concurrent = 0

    def has(self, name):
        return self.inner.has(name)

    def dispatch(self, name, raw):
        with self.lock:
            self.concurrent += 1
            self.max_concurrent = max(self.max_concurrent, self.concurrent)
        time.sleep(0.05)
        with self.lock:
            self.concurrent -= 1
        return self.inner.dispatch(name, raw)


class FuncDispatcher:
    def __init__(self, has_fn, dispatch_fn):
        self.has_fn = has_fn
        self.dispatch_fn = dispatch_fn

    def has(self, name):
        return self.has_fn(name)

    def dispatch(self, name, raw):
        return self.dispatch_fn(name, raw)


def test_agent_engine_run():
    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="1", name="search_api", args=args({"query": "login", "top_k": 3}))]),
        LLMReply(tool_calls=[ToolCall(id="2", name="get_api_detail", args=args({"service": "petstore", "endpoint": "GET /user/login"}))]),
        LLMReply(content="已完成汇总"),
    ])
    registry = MockDispatcher({
        "search_api": {"items": ["GET /user/login"]},
        "get_api_detail": {"endpoint": "GET /user/login"},
    })
    engine = AgentEngine(llm, registry, max_steps=5)
    out = engine.run("查询登录接口")
    assert "已完成汇总" in out
    assert "工具调用轨迹" in out
    assert "search_api" in out
    assert len(registry.calls) == 2


def test_agent_engine_max_steps():
    calls = [
        LLMReply(tool_calls=[ToolCall(id=str(i), name="search_api", args=args({"query": "login"}))])
        for i in range(1, 4)
    ]
    registry = MockDispatcher({"search_api": {"items": ["GET /user/login"]}})
    engine = AgentEngine(ScriptedLLM(calls), registry, max_steps=2)
    out = engine.run("查询登录接口")
    assert "max steps" in out
    assert "agent stopped: reached max steps (2)" in out


def test_agent_engine_passes_tool_catalog_to_llm():
    llm = CapturingLLM()
    engine = AgentEngine(llm, MockDispatcher({}), max_steps=1)
    engine.set_tool_catalog([ToolDefinition(name="search_api", description="search", schema={"type": "object"})])
    engine.run("查询接口")
    assert len(llm.last_tools) == 1
    assert llm.last_tools[0].name == "search_api"


def test_empty_catalog_clears_tools():
    llm = CapturingLLM()
    engine = AgentEngine(llm, MockDispatcher({}), max_steps=1)
    engine.set_tool_catalog([ToolDefinition(name="search_api")])
    engine.set_tool_catalog(None)
    engine.run("q")
    assert llm.last_tools == []


def test_agent_engine_parallel_tool_calls():
    llm = ScriptedLLM([
        LLMReply(tool_calls=[
            ToolCall(id="1", name="search_api", args=args({"query": "a"})),
            ToolCall(id="2", name="get_api_detail", args=args({"endpoint": "GET /pets"})),
        ]),
        LLMReply(content="done"),
    ])
    inner = MockDispatcher({
        "search_api": {"items": ["GET /pets"]},
        "get_api_detail": {"endpoint": "GET /pets", "method": "GET"},
    })
    tracking = ConcurrencyTrackingDispatcher(inner)
    engine = AgentEngine(llm, tracking, max_steps=5)
    out = engine.run("test parallel")
    assert "done" in out
    assert tracking.max_concurrent >= 2


def test_parallel_results_keep_call_order_in_memory():
    llm = ScriptedLLM([
        LLMReply(tool_calls=[
            ToolCall(id="a", name="search_api", args=None),
            ToolCall(id="b", name="get_api_detail", args=None),
        ]),
        LLMReply(content="done"),
    ])
    memory = BufferMemory(64)
    engine = AgentEngine(llm, MockDispatcher({"search_api": 1, "get_api_detail": 2}), memory=memory)
    summary, traces = engine.run_with_trace("q")
    assert summary == "done"
    tool_msgs = [m for m in memory.messages() if m.role == "tool"]
    assert [(m.tool_call_id, m.content) for m in tool_msgs] == [("a", "1"), ("b", "2")]
    assert [t.tool for t in traces] == ["search_api", "get_api_detail"]


def test_agent_engine_with_tool_calls_and_catalog():
    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="call_1", name="search_api", args=args({"query": "登录", "top_k": 3}))]),
        LLMReply(content="最终汇总完成"),
    ])
    dispatcher = MockDispatcher({"search_api": {"items": [{"endpoint": "GET /user/login"}]}})
    engine = AgentEngine(llm, dispatcher, max_steps=4)
    engine.set_tool_catalog([ToolDefinition(name="search_api", description="search api", schema={"type": "object"})])
    out = engine.run("查询登录接口")
    assert "最终汇总完成" in out
    assert "工具调用轨迹" in out
    assert dispatcher.calls == ["search_api"]


def test_run_output_trace_round_trips_through_parser():
    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="1", name="search_api", args=None)]),
        LLMReply(content="done"),
    ])
    engine = AgentEngine(llm, MockDispatcher({"search_api": {"items": []}}))
    items = parse_trace_from_summary(engine.run("q"))
    assert len(items) == 1
    assert items[0].tool == "search_api"
    assert items[0].status == "ok"
    assert items[0].step == 1
    assert items[0].preview == '{"items":[]}'


def test_run_stream_emits_events():
    class StreamLLM:
        def next(self, messages, tools):
            return LLMReply(content="Mock response for streaming")

    engine = AgentEngine(StreamLLM(), MockDispatcher({"search_api": {}}), max_steps=5)
    events = list(engine.run_stream("查询宠物接口"))
    kinds = [e.kind for e in events]
    assert kinds.count(EventKind.STEP_START) >= 1
    assert kinds.count(EventKind.COMPLETE) == 1
    assert events[-1].content == "Mock response for streaming"


def test_run_stream_error_event():
    engine = AgentEngine(FailingLLM(), MockDispatcher({}), max_steps=5)
    events = list(engine.run_stream("查询接口"))
    assert events[-1].kind == EventKind.ERROR
    assert "mock LLM error" in events[-1].content


def test_run_raises_on_llm_failure():
    engine = AgentEngine(FailingLLM(), MockDispatcher({}))
    with pytest.raises(RuntimeError, match="llm next failed: mock LLM error"):
        engine.run("q")


def test_unknown_tool_raises():
    llm = ScriptedLLM([LLMReply(tool_calls=[ToolCall(id="1", name="nope", args=None)])])
    dispatcher = MockDispatcher({})
    engine = AgentEngine(llm, dispatcher)
    with pytest.raises(ToolError, match="unknown tool: nope"):
        engine.run("q")
    assert dispatcher.calls == []


def test_failing_tool_is_encoded_as_error():
    def fail(name, raw):
        raise ValueError("bad input")

    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="1", name="search_api", args=None)]),
        LLMReply(content="done"),
    ])
    memory = BufferMemory(64)
    engine = AgentEngine(llm, FuncDispatcher(lambda n: True, fail), memory=memory)
    summary, traces = engine.run_with_trace("q")
    assert summary == "done"
    assert traces[0].success is False
    tool_msg = [m for m in memory.messages() if m.role == "tool"][0]
    assert json.loads(tool_msg.content) == {"error": "bad input"}


def test_empty_final_content_gets_placeholder():
    engine = AgentEngine(ScriptedLLM([LLMReply(content="")]), MockDispatcher({}))
    assert engine.run("q") == "结构化汇总结果为空。"


def test_system_prompt_option_and_default():
    llm = CapturingLLM()
    AgentEngine(llm, MockDispatcher({}), system_prompt="custom").run("hello")
    assert llm.last_messages[0].content == "custom"
    assert llm.last_messages[1].content == "hello"
    AgentEngine(llm, MockDispatcher({}), system_prompt="").run("hello")
    assert llm.last_messages[0].content == DEFAULT_SYSTEM_PROMPT


def test_extra_handlers_receive_events():
    class Recorder(Handler):
        def __init__(self):
            self.summaries = []
            self.tools = []

        def on_tool_end(self, step, trace):
            self.tools.append(trace.tool)

        def on_complete(self, summary, traces):
            self.summaries.append(summary)

    rec = Recorder()
    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="1", name="search_api", args=None)]),
        LLMReply(content="fin"),
    ])
    AgentEngine(llm, MockDispatcher({"search_api": {}}), handlers=[rec]).run("q")
    assert rec.tools == ["search_api"]
    assert rec.summaries == ["fin"]


def test_engine_with_retry_middleware():
    attempts = []

    def flaky(name, raw):
        attempts.append(name)
        if len(attempts) < 2:
            raise RuntimeError("transient")
        return {"items": ["GET /pets"]}

    llm = ScriptedLLM([
        LLMReply(tool_calls=[ToolCall(id="1", name="search_api", args=b'{"query":"pets"}')]),
        LLMReply(content="done"),
    ])
    engine = AgentEngine(
        llm,
        FuncDispatcher(lambda n: n == "search_api", flaky),
        max_steps=5,
        middlewares=[retry_middleware(RetryConfig(max_attempts=3, base_delay=0))],
    )
    summary, traces = engine.run_with_trace("test")
    assert "done" in summary
    assert len(attempts) == 2
    assert traces[0].success is True


def test_encode_tool_result():
    assert encode_tool_result({"a": 1}, None) == '{"a":1}'
    assert encode_tool_result(None, None) == "null"
    assert encode_tool_result(None, ValueError('say "hi"')) == '{"error":"say \\"hi\\""}'
    result = SearchAPIResult(items=[SearchAPIItem(endpoint="GET /pets")])
    decoded = json.loads(encode_tool_result(result, None))
    assert decoded["items"][0]["endpoint"] == "GET /pets"
    assert encode_tool_result(object(), None).startswith('{"error":"marshal tool result failed:')


def test_attach_tool_trace_summary():
    traces = [
        ToolTrace(step=1, tool="search_api", success=True, duration_ms=5, preview="{}"),
        ToolTrace(step=2, tool="get_api_detail", success=False, duration_ms=9, preview="x"),
    ]
    assert attach_tool_trace_summary("  sum  ", traces) == (
        "sum\n\n工具调用轨迹:\n"
        "1. step=1 tool=search_api status=ok latency=5ms preview={}\n"
        "2. step=2 tool=get_api_detail status=error latency=9ms preview=x"
    )
    assert attach_tool_trace_summary(" keep ", []) == " keep "
    assert attach_tool_trace_summary("", traces[:1]).startswith("工具调用轨迹:\n1.")


def test_short_preview():
    assert short_preview("  a\nb  ", 10) == "a b"
    assert short_preview("abcdef", 3) == "abc..."
    assert short_preview("abcdef", 0) == "abcdef"
    assert short_preview("abc", 3) == "abc"