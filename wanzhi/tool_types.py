"""Shared tool protocol, result types and argument helpers."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from wanzhi.model import IngestStats, Parameter, Response, SpecMeta


class ToolError(Exception):
    """Raised when a tool cannot carry out a call."""


class Tool(Protocol):
    """A callable tool with a name, a description and a JSON schema for its arguments."""

    name: str
    description: str
    schema: dict[str, Any]

    def execute(self, args: Any) -> Any: ...


@dataclass
class SearchAPIItem:
    service: str = ""
    endpoint: str = ""
    chunk_type: str = ""
    snippet: str = ""
    score: float = 0.0


@dataclass
class SearchAPIResult:
    items: list[SearchAPIItem] = field(default_factory=list)


@dataclass
class APIDetail:
    service: str = ""
    method: str = ""
    path: str = ""
    summary: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    parameters: list[Parameter] = field(default_factory=list)
    responses: list[Response] = field(default_factory=list)
    spec: SpecMeta = field(default_factory=SpecMeta)


@dataclass
class APIDetailResult:
    endpoint: APIDetail = field(default_factory=APIDetail)


@dataclass
class AnalyzeDependenciesResult:
    service: str = ""
    endpoint: str = ""
    dependencies: list[str] = field(default_factory=list)


@dataclass
class GenerateExampleResult:
    endpoint: str = ""
    language: str = ""
    code: str = ""


@dataclass
class ValidateParamsResult:
    valid: bool = False
    missing_required: list[str] = field(default_factory=list)
    unknown_params: list[str] = field(default_factory=list)


@dataclass
class ParseSwaggerResult:
    stats: IngestStats = field(default_factory=IngestStats)
    spec: SpecMeta = field(default_factory=SpecMeta)


@dataclass
class QueryTraceItem:
    step: int = 0
    tool: str = ""
    status: str = ""
    latency_ms: int = 0
    preview: str = ""


@dataclass
class QueryAPIResult:
    summary: str = ""
    trace: list[QueryTraceItem] = field(default_factory=list)


def decode_args(args: Any, tool_name: str) -> dict[str, Any]:
    """Turn raw JSON (bytes or str) or a mapping into an argument dict.

    JSON null and None give an empty dict; anything other than an object fails.
    """
    if args is None:
        return {}
    if isinstance(args, Mapping):
        return dict(args)
    try:
        payload = json.loads(args)
    except (TypeError, ValueError) as exc:
        raise ToolError(f"decode {tool_name} args: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ToolError(f"decode {tool_name} args: arguments must be a JSON object")
    return payload


def split_endpoint(endpoint: str) -> tuple[str, str]:
    """Split 'METHOD /path' into its method and path."""
    method, sep, path = endpoint.partition(" ")
    if not sep:
        raise ToolError(f"invalid endpoint format: {endpoint}")
    return method, path