"""Storage of parsed API specs, endpoints and chunks."""

from __future__ import annotations

import copy
import dataclasses
import threading
from collections.abc import Iterable
from typing import Protocol

from wanzhi.chunking import build_chunks, canonical_service_key, normalize_spec_meta
from wanzhi.model import Chunk, Endpoint, IngestStats, ParsedSpec, SpecMeta

_DEFAULT_VERSION = "v1.0.0"


class Ingestor(Protocol):
    """Persistence for ingested API knowledge."""

    def upsert_document(self, doc: ParsedSpec) -> IngestStats: ...

    def endpoints(self) -> list[Endpoint]: ...

    def chunks(self) -> list[Chunk]: ...

    def chunk_ids(self, service: str) -> list[str]: ...

    def spec_meta(self, service: str) -> SpecMeta | None: ...

    def save_spec(self, service: str, spec: bytes) -> None: ...

    def load_spec(self, service: str) -> bytes: ...

    def delete_service(self, service: str) -> None: ...

    def list_endpoints(self, service: str) -> list[Endpoint]: ...

    def save_endpoints(self, service: str, endpoints: Iterable[Endpoint]) -> None: ...

    def save_chunks(self, service: str, chunks: Iterable[Chunk]) -> None: ...

    def load_chunks(self, service: str) -> list[Chunk]: ...


def _require_key(service: str) -> str:
    key = canonical_service_key(service)
    if not key:
        raise ValueError("invalid service name")
    return key


class MemoryIngestor:
    """An in-memory Ingestor; service names are matched case-insensitively."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._endpoints: list[Endpoint] = []
        self._chunks: list[Chunk] = []
        self._specs: dict[str, SpecMeta] = {}
        self._raw_specs: dict[str, bytes] = {}
        self._version = _DEFAULT_VERSION

    def upsert_document(self, doc: ParsedSpec) -> IngestStats:
        """Merge a parsed document's endpoints and rebuild all chunks."""
        with self._lock:
            self._upsert_endpoints(doc.endpoints)
            meta = normalize_spec_meta(doc.meta, doc.endpoints)
            if meta is not None:
                self._specs[canonical_service_key(meta.service)] = meta
            self._chunks = build_chunks(self._endpoints, self._version)
            return IngestStats(endpoints=len(doc.endpoints), chunks=len(self._chunks))

    def endpoints(self) -> list[Endpoint]:
        with self._lock:
            return [copy.copy(ep) for ep in self._endpoints]

    def chunks(self) -> list[Chunk]:
        with self._lock:
            return [copy.copy(c) for c in self._chunks]

    def chunk_ids(self, service: str) -> list[str]:
        key = canonical_service_key(service)
        if not key:
            return []
        with self._lock:
            return [c.id for c in self._chunks if canonical_service_key(c.service) == key]

    def spec_meta(self, service: str) -> SpecMeta | None:
        key = canonical_service_key(service)
        if not key:
            return None
        with self._lock:
            meta = self._specs.get(key)
            if meta is None:
                return None
            return dataclasses.replace(meta, schemes=list(meta.schemes))

    def save_spec(self, service: str, spec: bytes) -> None:
        key = _require_key(service)
        with self._lock:
            self._raw_specs[key] = bytes(spec)

    def load_spec(self, service: str) -> bytes:
        key = _require_key(service)
        with self._lock:
            try:
                return self._raw_specs[key]
            except KeyError:
                raise LookupError(f"spec not found for service: {service}") from None

    def delete_service(self, service: str) -> None:
        key = _require_key(service)
        with self._lock:
            self._endpoints = [
                ep for ep in self._endpoints if canonical_service_key(ep.service) != key
            ]
            self._chunks = [c for c in self._chunks if canonical_service_key(c.service) != key]
            self._specs.pop(key, None)
            self._raw_specs.pop(key, None)

    def list_endpoints(self, service: str) -> list[Endpoint]:
        key = _require_key(service)
        with self._lock:
            return [
                copy.copy(ep) for ep in self._endpoints if canonical_service_key(ep.service) == key
            ]

    def save_endpoints(self, service: str, endpoints: Iterable[Endpoint]) -> None:
        with self._lock:
            self._upsert_endpoints(endpoints)

    def save_chunks(self, service: str, chunks: Iterable[Chunk]) -> None:
        """Replace every chunk of the service with the given ones."""
        key = _require_key(service)
        with self._lock:
            kept = [c for c in self._chunks if canonical_service_key(c.service) != key]
            self._chunks = kept + list(chunks)

    def load_chunks(self, service: str) -> list[Chunk]:
        key = _require_key(service)
        with self._lock:
            return [copy.copy(c) for c in self._chunks if canonical_service_key(c.service) == key]

    def _upsert_endpoints(self, endpoints: Iterable[Endpoint]) -> None:
        index = {ep.key(): i for i, ep in enumerate(self._endpoints)}
        for ep in endpoints:
            key = ep.key()
            if key in index:
                self._endpoints[index[key]] = ep
            else:
                index[key] = len(self._endpoints)
                self._endpoints.append(ep)