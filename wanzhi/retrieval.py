"""Chunk stores, keyword search, reranking and the search engine over them."""

from __future__ import annotations

import re
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from wanzhi.chunking import build_chunks
from wanzhi.model import Chunk, Endpoint

_SEPARATORS = re.compile(r"[ ,;，。]+")


@dataclass
class SearchResult:
    chunk: Chunk
    score: float
    metadata: dict[str, str] = field(default_factory=dict)


class Store(Protocol):
    """A searchable store of document chunks."""

    def search(
        self, query: str, top_k: int, filters: Mapping[str, str] | None
    ) -> list[SearchResult]: ...

    def upsert(
        self, chunks: Iterable[Chunk], embeddings: Sequence[Sequence[float]] | None
    ) -> None: ...

    def delete(self, ids: Iterable[str]) -> None: ...

    def delete_by_service(self, service: str) -> None: ...


def tokenize(query: str) -> list[str]:
    """Lower-case the query and split it on spaces and common punctuation."""
    text = query.strip().lower()
    if not text:
        return []
    return [p.strip() for p in _SEPARATORS.split(text) if p.strip()]


def score_chunk(chunk: Chunk, tokens: Iterable[str]) -> int:
    """Score: 2 per content hit, 3 per endpoint hit, 1 per type hit."""
    content = chunk.content.lower()
    endpoint = chunk.endpoint.lower()
    kind = chunk.type.lower()
    score = 0
    for token in tokens:
        if not token:
            continue
        if token in content:
            score += 2
        if token in endpoint:
            score += 3
        if token in kind:
            score += 1
    return score


class MemoryStore:
    """Keeps chunks in memory and searches them by keyword matching."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._chunks: list[Chunk] = []

    def search(
        self, query: str, top_k: int = 0, filters: Mapping[str, str] | None = None
    ) -> list[SearchResult]:
        tokens = tokenize(query)
        if not tokens:
            return []
        service_filter = (filters or {}).get("service", "")
        with self._lock:
            scored = []
            for chunk in self._chunks:
                if service_filter and chunk.service.casefold() != service_filter.casefold():
                    continue
                score = score_chunk(chunk, tokens)
                if score == 0:
                    continue
                scored.append(
                    SearchResult(chunk=chunk, score=float(score), metadata={"service": chunk.service})
                )
        scored.sort(key=lambda r: (-r.score, r.chunk.endpoint))
        if top_k <= 0 or top_k > len(scored):
            return scored
        return scored[:top_k]

    def upsert(
        self, chunks: Iterable[Chunk], embeddings: Sequence[Sequence[float]] | None = None
    ) -> None:
        """Insert or replace chunks by id; embeddings are not used here."""
        with self._lock:
            index = {c.id: i for i, c in enumerate(self._chunks)}
            for chunk in chunks:
                if chunk.id in index:
                    self._chunks[index[chunk.id]] = chunk
                else:
                    index[chunk.id] = len(self._chunks)
                    self._chunks.append(chunk)

    def delete(self, ids: Iterable[str]) -> None:
        id_set = set(ids)
        if not id_set:
            return
        with self._lock:
            self._chunks = [c for c in self._chunks if c.id not in id_set]

    def delete_by_service(self, service: str) -> None:
        target = service.casefold()
        with self._lock:
            self._chunks = [c for c in self._chunks if c.service.casefold() != target]


@dataclass
class Document:
    text: str


@dataclass
class RerankResult:
    index: int
    relevance_score: float


class Reranker(Protocol):
    def rerank(self, query: str, documents: list[Document], top_n: int) -> list[RerankResult]: ...


class RerankStore:
    """Wraps a store, recalling extra candidates and reordering them with a reranker."""

    def __init__(self, store: Store, reranker: Reranker | None = None, top_n: int = 0) -> None:
        self._store = store
        self._reranker = reranker
        self._top_n = top_n

    def upsert(
        self, chunks: Iterable[Chunk], embeddings: Sequence[Sequence[float]] | None = None
    ) -> None:
        self._store.upsert(chunks, embeddings)

    def search(
        self, query: str, top_k: int = 0, filters: Mapping[str, str] | None = None
    ) -> list[SearchResult]:
        reranker = self._reranker
        recall_k = top_k * 3 if reranker is not None and top_k > 0 else top_k
        results = self._store.search(query, recall_k, filters)

        def truncated() -> list[SearchResult]:
            if 0 < top_k < len(results):
                return results[:top_k]
            return results

        if not results or reranker is None:
            return truncated()

        documents = [Document(text=r.chunk.content) for r in results]
        top_n = self._top_n if self._top_n > 0 else top_k
        try:
            ranked = reranker.rerank(query, documents, top_n)
        except Exception:
            return truncated()
        return [
            SearchResult(chunk=results[r.index].chunk, score=float(r.relevance_score))
            for r in ranked
        ]

    def delete(self, ids: Iterable[str]) -> None:
        self._store.delete(ids)

    def delete_by_service(self, service: str) -> None:
        self._store.delete_by_service(service)


class SearchEngine:
    """Indexes endpoints as chunks in a store and searches them."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def index(self, endpoints: Iterable[Endpoint], version: str) -> None:
        self._store.upsert(build_chunks(endpoints, version), None)

    def delete_by_service(self, service: str) -> None:
        self._store.delete_by_service(service)

    def delete_by_ids(self, ids: Iterable[str]) -> None:
        self._store.delete(ids)

    def search(self, query: str, top_k: int = 0, service: str = "") -> list[SearchResult]:
        filters = {"service": service} if service else {}
        return self._store.search(query, top_k, filters)


def format_result(result: SearchResult) -> str:
    return f"[{result.chunk.endpoint}] {result.chunk.type} ({result.score:.4f})"