"""The natural-language query tool and parsing of tool-call traces."""

from __future__ import annotations

import re
from typing import Any, Protocol

from wanzhi.tool_types import QueryAPIResult, QueryTraceItem, ToolError, decode_args

_TRACE_HEADER = "工具调用轨迹:"
_TRACE_LINE = re.compile(
    r"^\d+\.\s+step=(\d+)\s+tool=(\S+)\s+status=(\S+)\s+latency=(\d+)ms\s+preview=(.*)$",
    re.ASCII,
)


class QueryRunner(Protocol):
    def run(self, user_query: str) -> str: ...


def parse_trace_from_summary(summary: str) -> list[QueryTraceItem]:
    """Read the numbered trace lines that follow the trace header in a summary."""
    _, found, section = summary.partition(_TRACE_HEADER)
    if not found:
        return []
    items = []
    for raw in section.split("\n"):
        line = raw.strip()
        if not line:
            continue
        match = _TRACE_LINE.match(line)
        if match is None:
            continue
        step, tool, status, latency, preview = match.groups()
        items.append(
            QueryTraceItem(
                step=int(step),
                tool=tool,
                status=status,
                latency_ms=int(latency),
                preview=preview,
            )
        )
    return items


class QueryAPITool:
    name = "query_api"
    description = "自然语言查询入口，走 Agent Loop 多工具编排"
    schema = {
        "type": "object",
        "required": ["query"],
        "properties": {"query": {"type": "string"}},
    }

    def __init__(self, runner: QueryRunner) -> None:
        self._runner = runner

    def execute(self, args: Any) -> QueryAPIResult:
        payload = decode_args(args, self.name)
        query = payload.get("query")
        if query is not None and not isinstance(query, str):
            raise ToolError(f"decode {self.name} args: query must be a string")
        if not query:
            raise ToolError("query is required")
        summary = self._runner.run(query)
        return QueryAPIResult(summary=summary, trace=parse_trace_from_summary(summary))