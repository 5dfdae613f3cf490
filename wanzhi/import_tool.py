"""A tool that imports Swagger documents into the knowledge base."""

from __future__ import annotations

from typing import Any

from wanzhi.knowledge_base import KnowledgeBase
from wanzhi.tool_types import ParseSwaggerResult, ToolError, decode_args


def _text(payload: dict[str, Any], key: str, tool: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ToolError(f"decode {tool} args: {key} must be a string")
    return value


class ParseSwaggerTool:
    name = "parse_swagger"
    description = "导入 Swagger/OpenAPI 文档到知识库"
    schema = {
        "type": "object",
        "properties": {
            "file_path": {"type": "string"},
            "url": {"type": "string"},
            "service": {"type": "string"},
        },
    }

    def __init__(self, kb: KnowledgeBase) -> None:
        self._kb = kb

    def execute(self, args: Any) -> ParseSwaggerResult:
        """Ingest from file_path when given, otherwise from url."""
        payload = decode_args(args, self.name)
        file_path = _text(payload, "file_path", self.name)
        url = _text(payload, "url", self.name)
        service = _text(payload, "service", self.name)

        if file_path.strip():
            doc, stats = self._kb.ingest_file_document(file_path, service)
        elif url.strip():
            doc, stats = self._kb.ingest_url_document(url, service)
        else:
            raise ToolError("file_path or url is required")
        return ParseSwaggerResult(stats=stats, spec=doc.meta)