"""Service configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any

_INT_RE = re.compile(r"[+-]?[0-9]+")

_SERVER_ACCESS_VAR = "AUTH_TOKEN"
_LLM_ACCESS_VAR = "LLM_API_KEY"
_EMBEDDING_ACCESS_VAR = "EMBEDDING_API_KEY"
_RERANK_ACCESS_VAR = "RERANK_API_KEY"
_REDIS_ACCESS_VAR = "REDIS_PASSWORD"


class ConfigError(ValueError):
    """Raised when an environment variable holds a value that cannot be parsed."""


def _parse_int(raw: str) -> int:
    if not _INT_RE.fullmatch(raw):
        raise ValueError(f"invalid integer {raw!r}")
    return int(raw)


def _parse_float(raw: str) -> float:
    if raw != raw.strip():
        raise ValueError(f"invalid number {raw!r}")
    return float(raw)


def _env(name: str, default: Any = "", parse: Callable[[str], Any] = str) -> Any:
    return field(default=default, metadata={"env": name, "parse": parse})


@dataclass
class ServerConfig:
    port: int = _env("PORT", 8080, _parse_int)
    auth_token: str = _env(_SERVER_ACCESS_VAR)


@dataclass
class LLMConfig:
    provider: str = _env("LLM_PROVIDER", "openai")
    api_key: str = _env(_LLM_ACCESS_VAR)
    model: str = _env("LLM_MODEL", "gpt-4o-mini")
    base_url: str = _env("LLM_BASE_URL")
    max_tokens: int = _env("LLM_MAX_TOKENS", 4096, _parse_int)
    timeout_seconds: int = _env("LLM_TIMEOUT_SECONDS", 30, _parse_int)
    max_retries: int = _env("LLM_MAX_RETRIES", 2, _parse_int)
    retry_backoff_ms: int = _env("LLM_RETRY_BACKOFF_MS", 200, _parse_int)


@dataclass
class AgentConfig:
    max_steps: int = _env("AGENT_MAX_STEPS", 10, _parse_int)
    temperature: float = _env("AGENT_TEMPERATURE", 0.1, _parse_float)


@dataclass
class RAGConfig:
    embedding_api_key: str = _env(_EMBEDDING_ACCESS_VAR)
    embedding_base_url: str = _env("EMBEDDING_BASE_URL")
    embedding_model: str = _env("EMBEDDING_MODEL", "bge-large-zh-v1.5")
    embedding_dim: int = _env("EMBEDDING_DIM", 1024, _parse_int)
    rerank_api_key: str = _env(_RERANK_ACCESS_VAR)
    rerank_base_url: str = _env("RERANK_BASE_URL")
    rerank_model: str = _env("RERANK_MODEL", "qwen3-vl-rerank")
    top_k: int = _env("RAG_TOP_K", 20, _parse_int)
    top_n: int = _env("RAG_TOP_N", 5, _parse_int)


@dataclass
class MilvusConfig:
    address: str = _env("MILVUS_ADDRESS", "localhost:19530")
    collection: str = _env("MILVUS_COLLECTION", "api_documents")


@dataclass
class RedisConfig:
    address: str = _env("REDIS_ADDRESS", "localhost:6379")
    password: str = _env(_REDIS_ACCESS_VAR)
    db: int = _env("REDIS_DB", 0, _parse_int)


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    rag: RAGConfig = field(default_factory=RAGConfig)
    milvus: MilvusConfig = field(default_factory=MilvusConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)


def _load_section(cls: type, environ: Mapping[str, str]) -> Any:
    values: dict[str, Any] = {}
    for f in fields(cls):
        name = f.metadata["env"]
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        try:
            values[f.name] = f.metadata["parse"](raw)
        except ValueError as exc:
            raise ConfigError(f"env: parse error on {name}: {exc}") from exc
    return cls(**values)


def load_from_env(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from environment variables, applying defaults for unset ones."""
    env = os.environ if environ is None else environ
    return Config(
        server=_load_section(ServerConfig, env),
        llm=_load_section(LLMConfig, env),
        agent=_load_section(AgentConfig, env),
        rag=_load_section(RAGConfig, env),
        milvus=_load_section(MilvusConfig, env),
        redis=_load_section(RedisConfig, env),
    )