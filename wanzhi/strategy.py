"""Choosing how to answer a query: directly, by planning, or by clarifying it."""

from __future__ import annotations

import enum
import json
from typing import Protocol

from wanzhi.messages import LLMClient, Message

_COMPLEX_KEYWORDS = ("流程", "步骤", "依赖", "分析", "完整", "整体", "对比", "拆解")
_AMBIGUOUS_KEYWORDS = ("查", "看看", "这个", "那个", "登录", "订单")
_ROUTER_PROMPT = (
    '你是查询路由器。只返回 JSON：{"strategy":"simple|complex|ambiguous","reason":"..."}'
)


class Strategy(enum.StrEnum):
    SIMPLE = "simple"
    COMPLEX = "complex"
    AMBIGUOUS = "ambiguous"


class StrategySelector(Protocol):
    def select(self, query: str) -> Strategy: ...


def is_complex_query(query: str) -> bool:
    if any(keyword in query for keyword in _COMPLEX_KEYWORDS):
        return True
    return "到" in query and ("从" in query or "流程" in query)


def is_ambiguous_query(query: str) -> bool:
    if len(query) <= 4:
        return True
    return any(kw in query and "接口" not in query for kw in _AMBIGUOUS_KEYWORDS)


def parse_strategy(raw: str) -> Strategy:
    try:
        return Strategy(raw.strip().lower())
    except ValueError:
        raise ValueError(f"unsupported strategy: {raw}") from None


class RuleBasedStrategySelector:
    """Selects a strategy from keywords and the length of the query."""

    def select(self, query: str) -> Strategy:
        normalized = query.strip()
        if not normalized:
            return Strategy.SIMPLE
        if is_complex_query(normalized):
            return Strategy.COMPLEX
        if is_ambiguous_query(normalized):
            return Strategy.AMBIGUOUS
        return Strategy.SIMPLE


class LLMStrategySelector:
    """Asks the model for a strategy, falling back when it fails or answers badly."""

    def __init__(
        self, llm_client: LLMClient | None, fallback: StrategySelector | None = None
    ) -> None:
        self._llm = llm_client
        self._fallback = fallback or RuleBasedStrategySelector()

    def select(self, query: str) -> Strategy:
        if self._llm is None:
            return self._fallback.select(query)
        try:
            reply = self._llm.next(
                [Message(role="system", content=_ROUTER_PROMPT), Message(role="user", content=query)],
                None,
            )
            result = json.loads(reply.content.strip())
        except Exception:
            return self._fallback.select(query)
        value = result.get("strategy") if isinstance(result, dict) else None
        if isinstance(value, str) and value in Strategy._value2member_map_:
            return Strategy(value)
        return self._fallback.select(query)