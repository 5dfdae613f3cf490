"""Registration, lookup and dispatch of tools by name."""

from __future__ import annotations

import copy
import threading
from typing import Any

from wanzhi.api_tools import (
    AnalyzeDependenciesTool,
    GetAPIDetailTool,
    SearchAPITool,
    ValidateParamsTool,
)
from wanzhi.codegen import GenerateExampleTool
from wanzhi.import_tool import ParseSwaggerTool
from wanzhi.knowledge_base import KnowledgeBase
from wanzhi.messages import ToolDefinition
from wanzhi.query_tool import QueryAPITool, QueryRunner
from wanzhi.tool_types import Tool, ToolError


class Registry:
    """Holds tools by name and dispatches calls to them."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """Add a tool; empty and duplicate names are refused."""
        name = tool.name
        if not name:
            raise ValueError("tool name cannot be empty")
        with self._lock:
            if name in self._tools:
                raise ValueError(f'tool "{name}" already registered')
            self._tools[name] = tool

    def dispatch(self, name: str, args: Any) -> Any:
        with self._lock:
            tool = self._tools.get(name)
        if tool is None:
            raise ToolError(f'tool "{name}" not found')
        return tool.execute(args)

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._tools

    def tool_definitions(self) -> list[ToolDefinition]:
        """A snapshot of the registered tools' definitions, in registration order."""
        with self._lock:
            return [
                ToolDefinition(
                    name=tool.name,
                    description=tool.description,
                    schema=copy.deepcopy(tool.schema),
                )
                for tool in self._tools.values()
            ]


def register_default_tools(registry: Registry, kb: KnowledgeBase) -> None:
    """Register the tools exposed at startup."""
    for tool in (
        SearchAPITool(kb),
        GetAPIDetailTool(kb),
        AnalyzeDependenciesTool(kb),
        GenerateExampleTool(kb),
        ValidateParamsTool(kb),
        ParseSwaggerTool(kb),
    ):
        registry.register(tool)


def register_query_tool(registry: Registry, runner: QueryRunner) -> None:
    """Register query_api once an agent is available to run queries."""
    registry.register(QueryAPITool(runner))