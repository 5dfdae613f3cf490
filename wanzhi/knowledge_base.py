"""The knowledge base: ingests API specs and answers lookups and searches."""

from __future__ import annotations

import urllib.error
import urllib.request
from pathlib import Path

from wanzhi.chunking import build_chunks
from wanzhi.ingestor import Ingestor
from wanzhi.model import Endpoint, IngestStats, ParsedSpec, SpecMeta
from wanzhi.retrieval import SearchEngine, SearchResult, Store
from wanzhi.swagger import parse_swagger_document_bytes
from wanzhi.tool_types import ToolError

_HTTP_TIMEOUT = 30.0


def _fetch(url: str) -> tuple[int, bytes]:
    request = urllib.request.Request(url, method="GET")
    try:
        with urllib.request.urlopen(request, timeout=_HTTP_TIMEOUT) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        with exc:
            return exc.code, exc.read()


class KnowledgeBase:
    """Holds ingested specs in an ingestor and their chunks in a searchable store."""

    def __init__(self, ingestor: Ingestor, store: Store) -> None:
        self._ingestor = ingestor
        self._engine = SearchEngine(store)

    def ingest_bytes(self, data: bytes, source: str) -> IngestStats:
        """Ingest a Swagger JSON document; PDF documents are refused."""
        if data.startswith(b"%PDF"):
            raise ValueError(f"PDF documents are not supported: {source}")
        return self._ingest_json(data, source)

    def _ingest_json(self, data: bytes, source: str) -> IngestStats:
        doc = parse_swagger_document_bytes(data, source)
        service = doc.meta.service
        if not service:
            service = source.removeprefix("https://").removesuffix(".json").replace("/", "-")

        self._ingestor.save_spec(service, data)
        self._ingestor.save_endpoints(service, doc.endpoints)
        chunks = build_chunks(doc.endpoints, doc.meta.version)
        self._ingestor.save_chunks(service, chunks)
        self._engine.index(doc.endpoints, doc.meta.version)
        return IngestStats(endpoints=len(doc.endpoints), chunks=len(chunks))

    def ingest_url(self, url: str) -> IngestStats:
        """Fetch a remote spec and ingest it; anything but HTTP 200 fails."""
        status, data = _fetch(url)
        if status != 200:
            raise ToolError(f"HTTP {status}: {url}")
        return self.ingest_bytes(data, url)

    def ingest_file_document(
        self, path: str | Path, service_override: str = ""
    ) -> tuple[ParsedSpec, IngestStats]:
        data = Path(path).read_bytes()
        source = service_override or str(path)
        stats = self.ingest_bytes(data, source)
        return parse_swagger_document_bytes(data, source), stats

    def ingest_url_document(
        self, url: str, service_override: str = ""
    ) -> tuple[ParsedSpec, IngestStats]:
        _, data = _fetch(url)
        source = service_override or url
        stats = self.ingest_bytes(data, source)
        return parse_swagger_document_bytes(data, source), stats

    def search(self, query: str, top_k: int = 0, service: str = "") -> list[SearchResult]:
        return self._engine.search(query, top_k, service)

    def get_endpoints(self, service: str) -> list[Endpoint]:
        return self._ingestor.list_endpoints(service)

    def get_endpoint(self, service: str, method: str, path: str) -> Endpoint:
        """Find one endpoint; the service must match exactly as ingested."""
        key = f"{service}:{method}:{path}"
        for endpoint in self._ingestor.list_endpoints(service):
            if endpoint.key() == key:
                return endpoint
        raise LookupError(f"endpoint not found: {method} {path}")

    def get_spec(self, service: str) -> bytes:
        return self._ingestor.load_spec(service)

    def get_spec_meta(self, service: str) -> SpecMeta:
        spec = self._ingestor.load_spec(service)
        return parse_swagger_document_bytes(spec, service).meta

    def delete_service(self, service: str) -> None:
        self._ingestor.delete_service(service)