"""Judging whether an answer fits the query, and whether to try again."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from wanzhi.messages import LLMClient, Message

_DEFAULT_THRESHOLD = 0.7
_INTENT_TOKENS = ("登录", "注册", "订单", "下单", "商品", "依赖", "流程")
_REFLECTOR_PROMPT = (
    '你是结果评估器。只返回 JSON：{"quality":0.0,"should_retry":false,'
    '"feedback":"...","improvements":["..."]}'
)


@dataclass
class ReflectionResult:
    quality: float = 0.0
    should_retry: bool = False
    feedback: str = ""
    improvements: list[str] = field(default_factory=list)


class Reflector(Protocol):
    def reflect(self, query: str, output: str) -> ReflectionResult: ...


def extract_intent_tokens(query: str) -> list[str]:
    """The intent keywords in the query, or the whole query if it has none."""
    return [t for t in _INTENT_TOKENS if t in query] or [query]


def has_intent_mismatch(query: str, output: str) -> bool:
    """True when login and registration intents have been swapped."""
    if "登录" in query and "登录" not in output and "注册" in output:
        return True
    if "注册" in query and "注册" not in output and "登录" in output:
        return True
    return False


class RuleBasedReflector:
    """Scores an answer by how many of the query's intent keywords it mentions."""

    def __init__(self, quality_threshold: float = _DEFAULT_THRESHOLD) -> None:
        self._threshold = quality_threshold if quality_threshold > 0 else _DEFAULT_THRESHOLD

    def reflect(self, query: str, output: str) -> ReflectionResult:
        query = query.strip()
        output = output.strip()
        if not output:
            return ReflectionResult(
                quality=0.0,
                should_retry=True,
                feedback="输出为空，未回答用户问题",
                improvements=["补充检索结果", "确保返回与查询直接相关的接口"],
            )

        tokens = extract_intent_tokens(query)
        matches = sum(1 for t in tokens if t in output)
        quality = min(0.25 + 0.6 * matches / len(tokens), 1.0)
        if "未检索到" in output or "max steps" in output:
            quality = 0.2
        feedback = "输出基本可用"
        improvements = ["保持当前策略"]
        if matches == 0 or has_intent_mismatch(query, output):
            quality = 0.3
            feedback = "输出与查询不匹配，缺少关键意图"
            improvements = ["重新检索，使用更精确的关键词", "检查是否混淆了接口意图"]
        return ReflectionResult(
            quality=quality,
            should_retry=quality < self._threshold,
            feedback=feedback,
            improvements=improvements,
        )


def _parse_reflection(raw: str) -> ReflectionResult:
    payload: Any = json.loads(raw.strip())
    if payload is None:
        return ReflectionResult()
    if not isinstance(payload, dict):
        raise ValueError("reflection must be a JSON object")
    quality = payload.get("quality", 0.0)
    if quality is None:
        quality = 0.0
    if isinstance(quality, bool) or not isinstance(quality, (int, float)):
        raise ValueError("quality must be a number")
    should_retry = payload.get("should_retry") or False
    if not isinstance(should_retry, bool):
        raise ValueError("should_retry must be a boolean")
    feedback = payload.get("feedback") or ""
    if not isinstance(feedback, str):
        raise ValueError("feedback must be a string")
    improvements = payload.get("improvements") or []
    if not isinstance(improvements, list) or not all(isinstance(i, str) for i in improvements):
        raise ValueError("improvements must be a list of strings")
    return ReflectionResult(
        quality=min(max(float(quality), 0.0), 1.0),
        should_retry=should_retry,
        feedback=feedback,
        improvements=list(improvements),
    )


class LLMReflector:
    """Asks the model to grade an answer, falling back when it fails or answers badly."""

    def __init__(
        self,
        llm_client: LLMClient | None,
        fallback: Reflector | None = None,
        quality_threshold: float = _DEFAULT_THRESHOLD,
    ) -> None:
        self._llm = llm_client
        self._fallback = fallback or RuleBasedReflector(quality_threshold)
        self._threshold = quality_threshold if quality_threshold > 0 else _DEFAULT_THRESHOLD

    def reflect(self, query: str, output: str) -> ReflectionResult:
        if self._llm is None:
            return self._fallback.reflect(query, output)
        try:
            reply = self._llm.next(
                [
                    Message(role="system", content=_REFLECTOR_PROMPT),
                    Message(role="user", content=f"query={query}\noutput={output}"),
                ],
                None,
            )
            return _parse_reflection(reply.content)
        except Exception:
            return self._fallback.reflect(query, output)