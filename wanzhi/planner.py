"""Planning a complex query as a sequence of dependent tool tasks."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from wanzhi.messages import LLMClient, Message
from wanzhi.rewriter import unique_non_empty

_PLANNER_PROMPT = (
    '你是任务规划器。只返回 JSON：{"tasks":[...]}。每个 task 包含 id/description/tool/args/depends_on。'
)


@dataclass
class Task:
    """One tool call in a plan; args is a JSON object encoded as text."""

    id: str = ""
    description: str = ""
    tool: str = ""
    args: str = ""
    depends_on: list[str] = field(default_factory=list)


@dataclass
class ExecutionPlan:
    tasks: list[Task] = field(default_factory=list)


class Planner(Protocol):
    def plan(self, query: str) -> ExecutionPlan: ...


def _json_text(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def infer_plan_topics(query: str) -> list[str]:
    """The business topics a query touches, in workflow order."""
    topics = []
    if "注册" in query:
        topics.append("用户注册")
    if "登录" in query or "注册到下单" in query or "下单" in query:
        topics.append("用户登录")
    if "商品" in query or "下单" in query:
        topics.append("商品查询")
    if "订单" in query or "下单" in query:
        topics.append("创建订单")
    return unique_non_empty(topics)


class RuleBasedPlanner:
    """Plans one search per topic, then a dependency analysis when warranted."""

    def plan(self, query: str) -> ExecutionPlan:
        query = query.strip()
        if not query:
            raise ValueError("query is required")
        topics = infer_plan_topics(query) or [query]
        tasks = [
            Task(
                id=f"task{i}",
                description=f"查找{topic}接口",
                tool="search_api",
                args=_json_text({"query": topic}),
            )
            for i, topic in enumerate(topics, start=1)
        ]
        ids = [t.id for t in tasks]
        if len(tasks) > 1 or any(k in query for k in ("流程", "依赖", "分析")):
            tasks.append(
                Task(
                    id=f"task{len(tasks) + 1}",
                    description="分析接口依赖关系",
                    tool="analyze_dependencies",
                    args=_json_text({"endpoint_ref": ids[-1]}),
                    depends_on=list(ids),
                )
            )
        return ExecutionPlan(tasks=tasks)


def _text_field(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"task field {key} must be a string")
    return value


def _parse_plan(raw: str) -> ExecutionPlan:
    payload = json.loads(raw.strip())
    if payload is None:
        return ExecutionPlan()
    if not isinstance(payload, dict):
        raise ValueError("plan must be a JSON object")
    items = payload.get("tasks") or []
    if not isinstance(items, list):
        raise ValueError("tasks must be a list")
    tasks = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("task must be an object")
        deps = item.get("depends_on") or []
        if not isinstance(deps, list) or not all(isinstance(d, str) for d in deps):
            raise ValueError("depends_on must be a list of strings")
        tasks.append(
            Task(
                id=_text_field(item, "id"),
                description=_text_field(item, "description"),
                tool=_text_field(item, "tool"),
                args=_text_field(item, "args"),
                depends_on=list(deps),
            )
        )
    return ExecutionPlan(tasks=tasks)


class LLMPlanner:
    """Asks the model for a plan, falling back when it fails or gives no tasks."""

    def __init__(self, llm_client: LLMClient | None, fallback: Planner | None = None) -> None:
        self._llm = llm_client
        self._fallback = fallback or RuleBasedPlanner()

    def plan(self, query: str) -> ExecutionPlan:
        if self._llm is None:
            return self._fallback.plan(query)
        try:
            reply = self._llm.next(
                [
                    Message(role="system", content=_PLANNER_PROMPT),
                    Message(role="user", content=query),
                ],
                None,
            )
            plan = _parse_plan(reply.content)
        except Exception:
            return self._fallback.plan(query)
        if not plan.tasks:
            return self._fallback.plan(query)
        return plan