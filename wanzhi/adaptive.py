"""An agent that picks a strategy per query, plans complex ones, and retries weak answers."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from wanzhi.engine import encode_tool_result
from wanzhi.planner import ExecutionPlan, Planner, RuleBasedPlanner, Task
from wanzhi.reflector import Reflector, RuleBasedReflector
from wanzhi.rewriter import QueryRewriter, RewriteStrategy, RuleBasedQueryRewriter, unique_non_empty
from wanzhi.strategy import RuleBasedStrategySelector, Strategy, StrategySelector
from wanzhi.tool_types import APIDetailResult, AnalyzeDependenciesResult, SearchAPIResult

_DEFAULT_THRESHOLD = 0.7


class _QueryRunner(Protocol):
    def run(self, user_query: str) -> str: ...


class _Dispatcher(Protocol):
    def dispatch(self, name: str, args: Any) -> Any: ...


def apply_improvements(query: str, improvements: Iterable[str]) -> str:
    """Join the query with its sorted, de-duplicated improvement hints."""
    parts = unique_non_empty([query, *improvements])
    return "；".join(parts[:1] + sorted(parts[1:]))


def extract_endpoint_from_result(result: Any) -> str:
    """The 'METHOD /path' a task result refers to, or an empty string."""
    if isinstance(result, SearchAPIResult):
        return result.items[0].endpoint if result.items else ""
    if isinstance(result, APIDetailResult):
        return f"{result.endpoint.method} {result.endpoint.path}"
    if isinstance(result, AnalyzeDependenciesResult):
        return result.endpoint
    if isinstance(result, Mapping):
        endpoint = result.get("endpoint")
        if isinstance(endpoint, str):
            return endpoint
    return ""


def format_task_result(result: Any) -> str:
    if isinstance(result, SearchAPIResult):
        return "找到接口 " + ", ".join(item.endpoint for item in result.items)
    if isinstance(result, AnalyzeDependenciesResult):
        return f"接口依赖 {result.endpoint} -> {', '.join(result.dependencies)}"
    if isinstance(result, APIDetailResult):
        return f"接口详情 {result.endpoint.method} {result.endpoint.path}"
    if isinstance(result, str):
        return result
    return encode_tool_result(result, None)


def summarize_plan_results(plan: ExecutionPlan | None, results: Mapping[str, Any]) -> str:
    """One line per completed task, in plan order."""
    if plan is None or not plan.tasks:
        return "分析结果为空。"
    lines = ["分析结果:"]
    for task in plan.tasks:
        if task.id not in results:
            continue
        lines.append(f"- 任务 {task.id}（{task.description}）: {format_task_result(results[task.id])}")
    return "\n".join(lines)


def _dependencies_met(task: Task, results: Mapping[str, Any]) -> bool:
    return all(dep in results for dep in task.depends_on)


class AdaptiveAgentEngine:
    """Routes each query to a simple, ambiguous or complex run and retries weak answers."""

    def __init__(
        self,
        base_engine: _QueryRunner | None,
        dispatcher: _Dispatcher | None,
        *,
        selector: StrategySelector | None = None,
        rewriter: QueryRewriter | None = None,
        planner: Planner | None = None,
        reflector: Reflector | None = None,
        max_retries: int = 0,
        quality_threshold: float = _DEFAULT_THRESHOLD,
    ) -> None:
        threshold = quality_threshold if quality_threshold > 0 else _DEFAULT_THRESHOLD
        self._base = base_engine
        self._dispatcher = dispatcher
        self._selector = selector or RuleBasedStrategySelector()
        self._rewriter = rewriter or RuleBasedQueryRewriter()
        self._planner = planner or RuleBasedPlanner()
        self._reflector = reflector or RuleBasedReflector(threshold)
        self._max_retries = max(max_retries, 0)
        self._threshold = threshold

    def run(self, user_query: str) -> str:
        query = user_query
        attempt = 0
        while True:
            strategy = self._selector.select(query)
            if strategy == Strategy.COMPLEX:
                result = self._run_complex(query)
            elif strategy == Strategy.AMBIGUOUS:
                result = self._run_ambiguous(query)
            else:
                result = self._run_simple(query)

            try:
                reflection = self._reflector.reflect(query, result)
            except Exception:
                return result
            if reflection is not None and reflection.should_retry and attempt < self._max_retries:
                query = apply_improvements(query, reflection.improvements)
                attempt += 1
                continue
            return result

    def _run_simple(self, query: str) -> str:
        if self._base is None:
            raise ValueError("base engine is nil")
        return self._base.run(query)

    def _run_ambiguous(self, query: str) -> str:
        if self._base is None:
            raise ValueError("base engine is nil")
        try:
            queries = self._rewriter.rewrite(query, RewriteStrategy.CLARIFY)
        except Exception:
            queries = []
        if not queries:
            return self._run_simple(query)

        best_result = ""
        best_quality = -1.0
        for rewritten in queries:
            try:
                result = self._base.run(rewritten)
            except Exception:
                continue
            try:
                reflection = self._reflector.reflect(query, result)
                quality = reflection.quality if reflection is not None else 0.0
            except Exception:
                quality = 0.0
            if quality > best_quality:
                best_quality = quality
                best_result = result
        return best_result or self._run_simple(query)

    def _run_complex(self, query: str) -> str:
        if self._dispatcher is None:
            raise ValueError("dispatcher is nil")
        plan = self._planner.plan(query)
        results: dict[str, Any] = {}
        for task in plan.tasks:
            if not _dependencies_met(task, results):
                continue
            results[task.id] = self._execute_task(task, results)
        return summarize_plan_results(plan, results)

    def _execute_task(self, task: Task, results: Mapping[str, Any]) -> Any:
        payload: dict[str, Any] = {}
        if task.args.strip():
            try:
                decoded = json.loads(task.args)
            except ValueError as exc:
                raise ValueError(f"decode task args for {task.id}: {exc}") from exc
            if decoded is not None and not isinstance(decoded, dict):
                raise ValueError(f"decode task args for {task.id}: arguments must be an object")
            payload = decoded or {}

        ref = payload.get("endpoint_ref")
        if isinstance(ref, str) and payload.get("endpoint") is None:
            payload["endpoint"] = extract_endpoint_from_result(results.get(ref))
            del payload["endpoint_ref"]

        refs = payload.get("endpoints")
        if isinstance(refs, list) and payload.get("endpoint") is None:
            for item in reversed(refs):
                if not isinstance(item, str):
                    continue
                endpoint = extract_endpoint_from_result(results.get(item.removesuffix(".result")))
                if endpoint:
                    payload["endpoint"] = endpoint
                    break
            del payload["endpoints"]

        args = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), sort_keys=True)
        return self._dispatcher.dispatch(task.tool, args)