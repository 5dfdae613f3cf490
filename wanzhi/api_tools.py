"""Tools that search, describe, analyse and validate ingested API endpoints."""

from __future__ import annotations

from typing import Any

from wanzhi.knowledge_base import KnowledgeBase
from wanzhi.model import Endpoint
from wanzhi.tool_types import (
    AnalyzeDependenciesResult,
    APIDetail,
    APIDetailResult,
    SearchAPIItem,
    SearchAPIResult,
    ToolError,
    ValidateParamsResult,
    decode_args,
    split_endpoint,
)

_DEFAULT_TOP_K = 5


def _get_str(payload: dict[str, Any], key: str, tool: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ToolError(f"decode {tool} args: {key} must be a string")
    return value


def _get_int(payload: dict[str, Any], key: str, tool: str) -> int:
    value = payload.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ToolError(f"decode {tool} args: {key} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ToolError(f"decode {tool} args: {key} must be an integer")
        value = int(value)
    return value


def _get_object(payload: dict[str, Any], key: str, tool: str) -> dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ToolError(f"decode {tool} args: {key} must be an object")
    return value


def _find_endpoint(kb: KnowledgeBase, service: str, endpoint: str) -> Endpoint:
    method, path = split_endpoint(endpoint)
    try:
        return kb.get_endpoint(service, method, path)
    except (LookupError, ValueError):
        raise ToolError(f"endpoint not found: {endpoint}") from None


class SearchAPITool:
    name = "search_api"
    description = "语义检索 API 接口摘要列表"
    schema = {
        "type": "object",
        "required": ["query"],
        "properties": {
            "query": {"type": "string"},
            "top_k": {"type": "integer"},
            "service": {"type": "string"},
        },
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> SearchAPIResult:
        payload = decode_args(args, self.name)
        query = _get_str(payload, "query", self.name)
        if not query:
            raise ToolError("query is required")
        top_k = _get_int(payload, "top_k", self.name)
        if top_k <= 0:
            top_k = _DEFAULT_TOP_K
        service = _get_str(payload, "service", self.name)

        hits = self._kb.search(query, top_k, service)
        return SearchAPIResult(
            items=[
                SearchAPIItem(
                    service=hit.chunk.service,
                    endpoint=hit.chunk.endpoint,
                    chunk_type=hit.chunk.type,
                    snippet=hit.chunk.content,
                    score=float(hit.score),
                )
                for hit in hits
            ]
        )


class GetAPIDetailTool:
    name = "get_api_detail"
    description = "获取指定接口的详细信息"
    schema = {
        "type": "object",
        "required": ["endpoint"],
        "properties": {"endpoint": {"type": "string"}},
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> APIDetailResult:
        payload = decode_args(args, self.name)
        service = _get_str(payload, "service", self.name)
        endpoint_name = _get_str(payload, "endpoint", self.name)

        ep = _find_endpoint(self._kb, service, endpoint_name)
        try:
            spec = self._kb.get_spec_meta(service)
        except (LookupError, ValueError):
            raise ToolError(f"spec not found: {service}") from None

        return APIDetailResult(
            endpoint=APIDetail(
                service=ep.service,
                method=ep.method,
                path=ep.path,
                summary=ep.summary,
                description=ep.description,
                tags=list(ep.tags),
                parameters=list(ep.parameters),
                responses=list(ep.responses),
                spec=spec,
            )
        )


def infer_endpoint_dependencies(path: str) -> list[str]:
    """Guess the related endpoints of a path from keywords in it."""
    lower = path.lower()
    if "order" in lower:
        return ["GET /store/inventory", "POST /store/order", "POST /pet/{petId}"]
    if "login" in lower:
        return ["GET /user/login", "GET /user/logout"]
    if "pet" in lower:
        return ["POST /pet", "GET /pet/{petId}"]
    return ["no dependency graph available"]


class AnalyzeDependenciesTool:
    name = "analyze_dependencies"
    description = "分析指定接口的上下游依赖关系"
    schema = {
        "type": "object",
        "required": ["endpoint"],
        "properties": {"service": {"type": "string"}, "endpoint": {"type": "string"}},
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> AnalyzeDependenciesResult:
        payload = decode_args(args, self.name)
        service = _get_str(payload, "service", self.name)
        endpoint_name = _get_str(payload, "endpoint", self.name)
        if not endpoint_name:
            raise ToolError("endpoint is required")

        ep = _find_endpoint(self._kb, service, endpoint_name)
        return AnalyzeDependenciesResult(
            service=ep.service,
            endpoint=ep.display_name(),
            dependencies=infer_endpoint_dependencies(ep.path),
        )


def is_empty_param(value: Any) -> bool:
    """None and blank strings count as missing values."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


class ValidateParamsTool:
    name = "validate_params"
    description = "校验接口请求参数是否完整且合法"
    schema = {
        "type": "object",
        "required": ["endpoint", "params"],
        "properties": {
            "service": {"type": "string"},
            "endpoint": {"type": "string"},
            "params": {"type": "object"},
        },
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> ValidateParamsResult:
        payload = decode_args(args, self.name)
        service = _get_str(payload, "service", self.name)
        endpoint_name = _get_str(payload, "endpoint", self.name)
        params = _get_object(payload, "params", self.name)
        if not endpoint_name:
            raise ToolError("endpoint is required")

        ep = _find_endpoint(self._kb, service, endpoint_name)
        known = {p.name for p in ep.parameters}
        missing = sorted(
            p.name
            for p in ep.parameters
            if p.required and (p.name not in params or is_empty_param(params[p.name]))
        )
        unknown = sorted(key for key in params if key not in known)
        return ValidateParamsResult(
            valid=not missing, missing_required=missing, unknown_params=unknown
        )