# wanzhi

A library for answering questions about HTTP APIs. It reads Swagger 2.0 JSON
documents, splits every endpoint into searchable text chunks, and offers a set
of tools (search, endpoint detail, dependency hints, parameter validation,
example code, document import, natural-language query) that an agent loop can
call. The agent loop itself talks to any object you supply that produces the
model's next reply.

It has no third-party dependencies.

## Install

```
pip install .
pip install ".[test]"   # adds pytest and pytest-asyncio
```

## Modules

- `wanzhi.config` – `load_from_env(environ=None)` builds a `Config` (sections
  `server`, `llm`, `agent`, `rag`, `milvus`, `redis`) from environment
  variables such as `PORT`, `LLM_MODEL`, `LLM_MAX_TOKENS`, `REDIS_ADDRESS`.
  Unset or empty variables take their defaults (port 8080, model
  `gpt-4o-mini`, 10 agent steps, …); a malformed number raises `ConfigError`.
- `wanzhi.model` – `Endpoint`, `Parameter`, `Response`, `Chunk`, `ChunkType`,
  `SpecMeta` (with `url_for_path()`), `ParsedSpec`, `IngestStats`.
- `wanzhi.swagger` – `parse_swagger_document_bytes()`,
  `parse_swagger_document_file()`, `parse_swagger_bytes()`,
  `parse_swagger_file()`. Endpoints come out sorted by path, then method;
  malformed documents raise `SwaggerError`.
- `wanzhi.chunking` – `build_chunks()` turns each endpoint into overview,
  request, response and dependency chunks with ids of the form
  `service:METHOD:/path:type`.
- `wanzhi.ingestor` – the `Ingestor` protocol and `MemoryIngestor`, which keeps
  raw specs, endpoints and chunks in memory, matching service names
  case-insensitively.
- `wanzhi.retrieval` – `MemoryStore` (keyword scoring: content hit 2, endpoint
  hit 3, chunk type hit 1), `RerankStore` (wraps a store and reorders results
  with a `Reranker` you provide), `SearchEngine`, `tokenize()`,
  `score_chunk()`, `format_result()`.
- `wanzhi.knowledge_base` – `KnowledgeBase`: `ingest_bytes()`,
  `ingest_file_document()`, `ingest_url()`, `ingest_url_document()` (fetched
  with the standard library), `search()`, `get_endpoint()`,
  `get_spec_meta()`, `delete_service()`. PDF input is refused.
- `wanzhi.api_tools`, `wanzhi.codegen`, `wanzhi.import_tool`,
  `wanzhi.query_tool` – the tools `search_api`, `get_api_detail`,
  `analyze_dependencies`, `validate_params`, `generate_example` (go, curl,
  python, javascript, java), `parse_swagger` and `query_api`. Tools take JSON
  text, bytes or a mapping as arguments and raise `ToolError` on bad input.
- `wanzhi.registry` – `Registry` (`register`, `dispatch`, `has`,
  `tool_definitions`), `register_default_tools(registry, kb)` and
  `register_query_tool(registry, runner)`.
- `wanzhi.messages` – `Message`, `ToolCall`, `ToolDefinition`, `LLMReply` and
  the `LLMClient` protocol (`next(messages, tools) -> LLMReply`).
- `wanzhi.memory` – `BufferMemory` (bounded by message count, keeps the
  leading system message) and `TokenWindowMemory` (bounded by a token budget,
  keeps the system message and latest user message, cuts long tool results).
- `wanzhi.middleware` – `chain()`, `retry_middleware(RetryConfig(...))` and
  `is_permanent()` for wrapping tool dispatch.
- `wanzhi.events` – `Handler`, `MultiHandler`, `TraceHandler`,
  `StreamHandler`, `AgentEvent`, `EventKind`, `ToolTrace`.
- `wanzhi.engine` – `AgentEngine`: `run()` returns the final summary followed
  by a numbered tool-call trace; `run_with_trace()` returns them separately;
  `run_stream()` yields `AgentEvent`s from a background thread. Several tool
  calls in one step run concurrently; a failing tool is reported back to the
  model as `{"error": ...}`.
- `wanzhi.strategy`, `wanzhi.rewriter`, `wanzhi.planner`, `wanzhi.reflector`
  – rule-based and model-backed strategy selection, query rewriting, task
  planning and answer grading. The model-backed ones fall back to the rules
  when the model fails or answers with unusable JSON.
- `wanzhi.adaptive` – `AdaptiveAgentEngine` picks a strategy per query: simple
  queries go straight to a base runner, ambiguous ones are rewritten and the
  best-graded answer kept, complex ones are planned and their tasks dispatched
  in order; weak answers can be retried up to `max_retries` times.

## Example

```python
from wanzhi.ingestor import MemoryIngestor
from wanzhi.retrieval import MemoryStore
from wanzhi.knowledge_base import KnowledgeBase
from wanzhi.registry import Registry, register_default_tools

kb = KnowledgeBase(MemoryIngestor(), MemoryStore())
kb.ingest_file_document("petstore.json", "petstore")

registry = Registry()
register_default_tools(registry, kb)

result = registry.dispatch(
    "get_api_detail",
    '{"service": "petstore", "endpoint": "GET /user/login"}',
)
print(result.endpoint.spec.url_for_path(result.endpoint.path))
```

An agent needs an object with a `next(messages, tools)` method returning an
`LLMReply`:

```python
from wanzhi.engine import AgentEngine

engine = AgentEngine(my_llm_client, registry, max_steps=5)
print(engine.run("查询登录接口"))
```

## What it does not do

- It has no command-line program and no HTTP server; there are no health,
  metrics, webhook or chat endpoints. Embed the classes in your own service.
- It ships no model client. You supply the `LLMClient`; without one, use the
  rule-based selector, rewriter, planner and reflector directly.
- Storage is in memory only (`MemoryIngestor`, `MemoryStore`). `Config` holds
  Redis, Milvus, embedding and rerank settings, but nothing in the package
  connects to those services, and no embeddings are computed.