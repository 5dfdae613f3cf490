"""Rewriting user queries into clearer, expanded or decomposed search queries."""

from __future__ import annotations

import enum
import json
from collections.abc import Iterable
from typing import Protocol

from wanzhi.messages import LLMClient, Message

_REWRITER_PROMPT = '你是查询改写器。只返回 JSON 数组，例如 ["查询1","查询2"]。'


class RewriteStrategy(enum.StrEnum):
    EXPAND = "expand"
    CLARIFY = "clarify"
    DECOMPOSE = "decompose"


class QueryRewriter(Protocol):
    def rewrite(self, query: str, strategy: str) -> list[str]: ...


def unique_non_empty(items: Iterable[str]) -> list[str]:
    """Strip each item and keep the non-empty ones, first occurrence only."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        item = item.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        out.append(item)
    return out


def _expand_query(query: str) -> str:
    if "登录" in query:
        return "用户认证相关的 POST 接口，包含 username 和 password 参数"
    if "订单" in query:
        return "订单相关接口，包含订单查询、订单详情和订单创建能力"
    return query + " 相关 API 接口"


def _clarify_query(query: str) -> str:
    if "订单" in query:
        return "查询订单详情的 GET 接口，需要订单 ID 参数"
    if "登录" in query:
        return "用户认证相关的 POST 接口，包含 username 和 password 参数"
    return query + " 的具体接口定义"


def _decompose_query(query: str) -> list[str]:
    steps = []
    if "注册" in query:
        steps.append("用户注册接口")
    if "登录" in query or "注册到下单" in query or "下单" in query:
        steps.append("用户登录接口")
    if "商品" in query or "下单" in query:
        steps.append("商品查询接口")
    if "订单" in query or "下单" in query:
        steps.append("订单创建接口")
    return steps or [query]


class RuleBasedQueryRewriter:
    """Rewrites queries with fixed keyword rules."""

    def rewrite(self, query: str, strategy: str) -> list[str]:
        query = query.strip()
        if not query:
            raise ValueError("query is required")
        if strategy == RewriteStrategy.EXPAND:
            queries = [query, _expand_query(query), query + " 请求参数", query + " 响应示例"]
        elif strategy == RewriteStrategy.CLARIFY:
            queries = [_clarify_query(query), query + " 相关接口详情"]
        elif strategy == RewriteStrategy.DECOMPOSE:
            queries = _decompose_query(query)
        else:
            queries = [query]
        return unique_non_empty(queries)


def _string_list(value: object) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError("invalid rewrite response")
    return list(value)


def parse_rewrite_queries(raw: str) -> list[str]:
    """Accept a JSON array of strings or an object with a "queries" array."""
    try:
        payload = json.loads(raw.strip())
    except ValueError:
        raise ValueError("invalid rewrite response") from None
    if payload is None or isinstance(payload, list):
        return _string_list(payload)
    if isinstance(payload, dict):
        return _string_list(payload.get("queries"))
    raise ValueError("invalid rewrite response")


class LLMQueryRewriter:
    """Asks the model to rewrite a query, falling back when it fails or answers badly."""

    def __init__(
        self, llm_client: LLMClient | None, fallback: QueryRewriter | None = None
    ) -> None:
        self._llm = llm_client
        self._fallback = fallback or RuleBasedQueryRewriter()

    def rewrite(self, query: str, strategy: str) -> list[str]:
        if self._llm is None:
            return self._fallback.rewrite(query, strategy)
        try:
            reply = self._llm.next(
                [
                    Message(role="system", content=_REWRITER_PROMPT),
                    Message(role="user", content=f"strategy={strategy}\nquery={query}"),
                ],
                None,
            )
            queries = parse_rewrite_queries(reply.content)
        except Exception:
            return self._fallback.rewrite(query, strategy)
        if not queries:
            return self._fallback.rewrite(query, strategy)
        return unique_non_empty(queries)