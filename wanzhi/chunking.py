"""Splitting endpoints into document chunks and normalising spec metadata."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence

from wanzhi.model import Chunk, ChunkType, Endpoint, SpecMeta

DEPENDENCY_PLACEHOLDER = "接口依赖信息暂不可用"


def build_endpoint_chunks(endpoint: Endpoint, version: str) -> list[Chunk]:
    """Build the overview, request, response and dependency chunks of an endpoint.

    Chunk ids have the fixed form ``{service}:{method}:{path}:{type}``.
    """
    base = f"{endpoint.service}:{endpoint.method}:{endpoint.path}"
    name = endpoint.display_name()

    def make(kind: ChunkType, content: str) -> Chunk:
        return Chunk(
            id=f"{base}:{kind.value}",
            service=endpoint.service,
            endpoint=name,
            type=kind.value,
            content=content,
            version=version,
        )

    request_parts = []
    for param in endpoint.parameters:
        required = "required" if param.required else "optional"
        typ = param.type or param.schema_ref
        request_parts.append(f"{param.name}:{typ}({required})")

    response_parts = [f"{r.status_code} {r.description.strip()}" for r in endpoint.responses]

    return [
        make(ChunkType.OVERVIEW, f"{name} - {endpoint.summary.strip()}"),
        make(ChunkType.REQUEST, ", ".join(request_parts)),
        make(ChunkType.RESPONSE, "; ".join(response_parts)),
        make(ChunkType.DEPENDENCY, DEPENDENCY_PLACEHOLDER),
    ]


def build_chunks(endpoints: Iterable[Endpoint], version: str) -> list[Chunk]:
    """Build chunks for every endpoint, in order."""
    return [chunk for ep in endpoints for chunk in build_endpoint_chunks(ep, version)]


def normalize_spec_meta(meta: SpecMeta, endpoints: Sequence[Endpoint]) -> SpecMeta | None:
    """Return a copy of meta with a resolved service name, or None if none can be found."""
    service = meta.service.strip()
    if not service and endpoints:
        service = endpoints[0].service.strip()
    if not service:
        return None
    return dataclasses.replace(meta, service=service, schemes=list(meta.schemes))


def canonical_service_key(service: str) -> str:
    return service.strip().lower()