"""Core data types describing API endpoints, specs and document chunks."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ChunkType(enum.StrEnum):
    OVERVIEW = "overview"
    REQUEST = "request"
    RESPONSE = "response"
    DEPENDENCY = "dependency"


@dataclass
class Chunk:
    """A semantic slice of an endpoint's documentation."""

    id: str = ""
    service: str = ""
    endpoint: str = ""
    type: str = ""
    content: str = ""
    version: str = ""


@dataclass
class Parameter:
    name: str = ""
    in_: str = ""
    required: bool = False
    type: str = ""
    description: str = ""
    schema_ref: str = ""


@dataclass
class Response:
    status_code: str = ""
    description: str = ""


@dataclass
class Endpoint:
    service: str = ""
    method: str = ""
    path: str = ""
    summary: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    deprecated: bool = False
    parameters: list[Parameter] = field(default_factory=list)
    responses: list[Response] = field(default_factory=list)

    def key(self) -> str:
        """Unique identifier: service:method:path."""
        return f"{self.service}:{self.method}:{self.path}"

    def display_name(self) -> str:
        return f"{self.method} {self.path}"


def normalize_path_prefix(raw: str) -> str:
    """Give a path a leading slash and no trailing slash; '' and '/' become ''."""
    value = raw.strip()
    if value in ("", "/"):
        return ""
    if not value.startswith("/"):
        value = "/" + value
    return value.rstrip("/")


def _clean_path(path: str) -> str:
    rooted = path.startswith("/")
    parts: list[str] = []
    for segment in path.split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            if parts and parts[-1] != "..":
                parts.pop()
            elif not rooted:
                parts.append("..")
            continue
        parts.append(segment)
    joined = "/".join(parts)
    if rooted:
        return "/" + joined
    return joined or "."


def _join_url_path(base_path: str, endpoint_path: str) -> str:
    base = normalize_path_prefix(base_path)
    endpoint = normalize_path_prefix(endpoint_path)
    if not base and not endpoint:
        return "/"
    if not base:
        return endpoint
    if not endpoint:
        return base
    joined = _clean_path(base + "/" + endpoint)
    if not joined.startswith("/"):
        joined = "/" + joined
    return joined


@dataclass
class SpecMeta:
    service: str = ""
    title: str = ""
    version: str = ""
    host: str = ""
    base_path: str = ""
    schemes: list[str] = field(default_factory=list)

    def url_for_path(self, endpoint_path: str) -> str:
        """Full URL for an endpoint path, or just the path when no host is known."""
        full_path = _join_url_path(self.base_path, endpoint_path)
        host = self.host.strip()
        if not host:
            return full_path
        scheme = next((s.strip() for s in self.schemes if s.strip()), "https")
        return f"{scheme}://{host}{full_path}"


@dataclass
class ParsedSpec:
    meta: SpecMeta = field(default_factory=SpecMeta)
    endpoints: list[Endpoint] = field(default_factory=list)


@dataclass
class IngestStats:
    endpoints: int = 0
    chunks: int = 0