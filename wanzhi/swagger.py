"""Parsing Swagger 2.0 JSON documents into endpoints and spec metadata."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from wanzhi.model import Endpoint, Parameter, ParsedSpec, Response, SpecMeta, normalize_path_prefix

_VALID_METHODS = frozenset({"get", "post", "put", "delete", "patch", "options", "head"})


class SwaggerError(ValueError):
    """Raised when a Swagger document cannot be read or decoded."""


def _fail(what: str) -> SwaggerError:
    return SwaggerError(f"decode swagger: {what}")


def _obj(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _fail(f"{what} must be an object")
    return value


def _arr(value: Any, what: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise _fail(f"{what} must be an array")
    return value


def _str(obj: dict[str, Any], key: str, what: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _fail(f"{what}.{key} must be a string")
    return value


def _bool(obj: dict[str, Any], key: str, what: str) -> bool:
    value = obj.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _fail(f"{what}.{key} must be a boolean")
    return value


def _str_list(obj: dict[str, Any], key: str, what: str) -> list[str]:
    items = _arr(obj.get(key), f"{what}.{key}")
    if not all(isinstance(item, str) for item in items):
        raise _fail(f"{what}.{key} must hold strings")
    return list(items)


def normalize_service_name(raw: str) -> str:
    value = raw.strip().lower()
    if not value:
        return "default-service"
    return value.replace(" ", "-")


def normalize_schemes(raw: list[str] | None) -> list[str]:
    return [v for v in (s.strip().lower() for s in raw or []) if v]


def _parse_parameter(raw: Any, what: str) -> Parameter:
    p = _obj(raw, what)
    schema = _obj(p.get("schema"), f"{what}.schema")
    return Parameter(
        name=_str(p, "name", what),
        in_=_str(p, "in", what),
        required=_bool(p, "required", what),
        type=_str(p, "type", what),
        description=_str(p, "description", what),
        schema_ref=_str(schema, "$ref", f"{what}.schema"),
    )


def _parse_operation(service: str, method: str, path: str, raw: Any) -> Endpoint:
    what = f"paths.{path}.{method}"
    op = _obj(raw, what)
    params = [
        _parse_parameter(p, f"{what}.parameters")
        for p in _arr(op.get("parameters"), f"{what}.parameters")
    ]
    responses_raw = _obj(op.get("responses"), f"{what}.responses")
    responses = [
        Response(
            status_code=code,
            description=_str(_obj(responses_raw[code], f"{what}.responses"), "description", what),
        )
        for code in sorted(responses_raw)
    ]
    return Endpoint(
        service=service,
        method=method.upper(),
        path=path,
        summary=_str(op, "summary", what).strip(),
        description=_str(op, "description", what).strip(),
        tags=_str_list(op, "tags", what),
        deprecated=_bool(op, "deprecated", what),
        parameters=params,
        responses=responses,
    )


def parse_swagger_document_bytes(body: bytes | str, service: str = "") -> ParsedSpec:
    """Parse a Swagger JSON document; endpoints come sorted by path, then method."""
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise _fail(str(exc)) from exc
    doc = _obj(data, "document")

    info = _obj(doc.get("info"), "info")
    title = _str(info, "title", "info")
    svc = service.strip() or normalize_service_name(title)

    paths = _obj(doc.get("paths"), "paths")
    endpoints: list[Endpoint] = []
    for path in sorted(paths):
        ops = _obj(paths[path], f"paths.{path}")
        for method in ops:
            _obj(ops[method], f"paths.{path}.{method}")
        methods = sorted(m for m in ops if m.lower() in _VALID_METHODS)
        endpoints.extend(_parse_operation(svc, m, path, ops[m]) for m in methods)

    meta = SpecMeta(
        service=svc,
        title=title.strip(),
        version=_str(info, "version", "info").strip(),
        host=_str(doc, "host", "document").strip(),
        base_path=normalize_path_prefix(_str(doc, "basePath", "document")),
        schemes=normalize_schemes(_str_list(doc, "schemes", "document")),
    )
    return ParsedSpec(meta=meta, endpoints=endpoints)


def parse_swagger_bytes(body: bytes | str, service: str = "") -> list[Endpoint]:
    return parse_swagger_document_bytes(body, service).endpoints


def parse_swagger_document_file(path: str | Path, service: str = "") -> ParsedSpec:
    try:
        body = Path(path).read_bytes()
    except OSError as exc:
        raise SwaggerError(f"read swagger file: {exc}") from exc
    return parse_swagger_document_bytes(body, service)


def parse_swagger_file(path: str | Path, service: str = "") -> list[Endpoint]:
    return parse_swagger_document_file(path, service).endpoints