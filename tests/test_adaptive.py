import json

import pytest

from wanzhi.adaptive import (
    AdaptiveAgentEngine,
    apply_improvements,
    extract_endpoint_from_result,
    format_task_result,
    summarize_plan_results,
)
from wanzhi.planner import ExecutionPlan, Task
from wanzhi.reflector import ReflectionResult
from wanzhi.strategy import Strategy
from wanzhi.tool_types import (
    APIDetail,
    APIDetailResult,
    AnalyzeDependenciesResult,
    SearchAPIItem,
    SearchAPIResult,
)


class StubRunner:
    def __init__(self, responses=None):
        self.responses = responses
        self.queries = []

    def run(self, query):
        self.queries.append(query)
        if self.responses is None:
            return f"base:{query}"
        return self.responses.get(query, f"missing:{query}")


def endpoint_for_query(query):
    return {
        "用户注册": "POST /users/register",
        "用户登录": "POST /users/login",
        "创建订单": "POST /orders",
    }.get(query, "GET /unknown")


class StubDispatcher:
    def __init__(self):
        self.calls = []
        self.args = []

    def dispatch(self, name, args):
        self.calls.append(name)
        payload = json.loads(args)
        self.args.append(payload)
        if name == "search_api":
            query = payload.get("query", "")
            return SearchAPIResult(items=[SearchAPIItem(endpoint=endpoint_for_query(query), snippet=query)])
        if name == "analyze_dependencies":
            return AnalyzeDependenciesResult(
                endpoint=payload.get("endpoint", ""), dependencies=["接口依赖A", "接口依赖B"]
            )
        return {"ok": True}


class FixedSelector:
    def __init__(self, strategy):
        self.strategy = strategy

    def select(self, query):
        return self.strategy


class FixedRewriter:
    def __init__(self, queries):
        self.queries = queries

    def rewrite(self, query, strategy):
        return list(self.queries)


class FixedPlanner:
    def __init__(self, plan):
        self._plan = plan

    def plan(self, query):
        return self._plan


class FixedReflector:
    def __init__(self, result):
        self.result = result

    def reflect(self, query, output):
        return self.result


class KeywordReflector:
    def reflect(self, query, output):
        return ReflectionResult(quality=0.95 if "用户登录接口" in output else 0.2)


def test_run_simple_delegates_to_base_engine():
    base = StubRunner({"查询用户登录接口": "登录接口结果"})
    engine = AdaptiveAgentEngine(
        base,
        StubDispatcher(),
        selector=FixedSelector(Strategy.SIMPLE),
        reflector=FixedReflector(ReflectionResult(quality=0.9)),
    )
    assert engine.run("查询用户登录接口") == "登录接口结果"


def test_run_ambiguous_selects_best_rewrite():
    base = StubRunner(
        {"用户登录接口": "找到用户登录接口，支持 username/password", "管理员登录接口": "找到管理员接口"}
    )
    engine = AdaptiveAgentEngine(
        base,
        StubDispatcher(),
        selector=FixedSelector(Strategy.AMBIGUOUS),
        rewriter=FixedRewriter(["管理员登录接口", "用户登录接口"]),
        reflector=KeywordReflector(),
    )
    out = engine.run("登录")
    assert "用户登录接口" in out


def test_run_ambiguous_without_rewrites_runs_simple():
    base = StubRunner()
    engine = AdaptiveAgentEngine(
        base,
        StubDispatcher(),
        selector=FixedSelector(Strategy.AMBIGUOUS),
        rewriter=FixedRewriter([]),
        reflector=FixedReflector(ReflectionResult(quality=1.0)),
    )
    assert engine.run("q") == "base:q"


def test_run_complex_executes_plan_tasks():
    dispatcher = StubDispatcher()
    plan = ExecutionPlan(
        tasks=[
            Task(id="task1", description="查找用户注册接口", tool="search_api", args='{"query":"用户注册"}'),
            Task(id="task2", description="查找用户登录接口", tool="search_api", args='{"query":"用户登录"}'),
            Task(id="task3", description="查找订单创建接口", tool="search_api", args='{"query":"创建订单"}'),
            Task(
                id="task4",
                description="分析接口依赖关系",
                tool="analyze_dependencies",
                args='{"endpoint_ref":"task3"}',
                depends_on=["task1", "task2", "task3"],
            ),
        ]
    )
    engine = AdaptiveAgentEngine(
        StubRunner(),
        dispatcher,
        selector=FixedSelector(Strategy.COMPLEX),
        planner=FixedPlanner(plan),
        reflector=FixedReflector(ReflectionResult(quality=0.95)),
    )
    out = engine.run("分析用户注册到下单流程")
    assert "任务 task1" in out and "接口依赖" in out
    assert len(dispatcher.calls) == 4
    assert dispatcher.args[3] == {"endpoint": "POST /orders"}
    assert "- 任务 task4（分析接口依赖关系）: 接口依赖 POST /orders -> 接口依赖A, 接口依赖B" in out


def test_run_complex_resolves_endpoint_list_and_skips_unmet():
    dispatcher = StubDispatcher()
    plan = ExecutionPlan(
        tasks=[
            Task(id="t1", description="d1", tool="search_api", args='{"query":"用户登录"}'),
            Task(
                id="t2",
                description="d2",
                tool="analyze_dependencies",
                args='{"endpoints":["t1.result","missing"]}',
            ),
            Task(id="t3", description="d3", tool="search_api", depends_on=["nope"]),
        ]
    )
    engine = AdaptiveAgentEngine(
        StubRunner(),
        dispatcher,
        selector=FixedSelector(Strategy.COMPLEX),
        planner=FixedPlanner(plan),
        reflector=FixedReflector(ReflectionResult(quality=1.0)),
    )
    out = engine.run("x")
    assert dispatcher.calls == ["search_api", "analyze_dependencies"]
    assert dispatcher.args[1] == {"endpoint": "POST /users/login"}
    assert "t3" not in out


def test_run_complex_bad_args_raise():
    plan = ExecutionPlan(tasks=[Task(id="t1", tool="search_api", args="{bad")])
    engine = AdaptiveAgentEngine(
        StubRunner(), StubDispatcher(), selector=FixedSelector(Strategy.COMPLEX), planner=FixedPlanner(plan)
    )
    with pytest.raises(ValueError, match="decode task args for t1"):
        engine.run("x")


def test_run_complex_without_dispatcher_raises():
    engine = AdaptiveAgentEngine(StubRunner(), None, selector=FixedSelector(Strategy.COMPLEX))
    with pytest.raises(ValueError):
        engine.run("x")


def test_run_simple_without_base_raises():
    engine = AdaptiveAgentEngine(None, StubDispatcher(), selector=FixedSelector(Strategy.SIMPLE))
    with pytest.raises(ValueError):
        engine.run("x")


def test_retry_applies_improvements():
    base = StubRunner()
    engine = AdaptiveAgentEngine(
        base,
        StubDispatcher(),
        selector=FixedSelector(Strategy.SIMPLE),
        reflector=FixedReflector(ReflectionResult(quality=0.1, should_retry=True, improvements=["b", "a"])),
        max_retries=1,
    )
    assert engine.run("q") == "base:q；a；b"
    assert base.queries == ["q", "q；a；b"]


def test_apply_improvements():
    assert apply_improvements("q", ["z", "a", "a", " "]) == "q；a；z"
    assert apply_improvements("q", []) == "q"


def test_extract_endpoint_from_result():
    assert extract_endpoint_from_result(SearchAPIResult(items=[SearchAPIItem(endpoint="GET /a")])) == "GET /a"
    assert extract_endpoint_from_result(SearchAPIResult()) == ""
    detail = APIDetailResult(endpoint=APIDetail(method="POST", path="/pet"))
    assert extract_endpoint_from_result(detail) == "POST /pet"
    assert extract_endpoint_from_result(AnalyzeDependenciesResult(endpoint="GET /b")) == "GET /b"
    assert extract_endpoint_from_result({"endpoint": "GET /c"}) == "GET /c"
    assert extract_endpoint_from_result(None) == ""


def test_format_task_result():
    search = SearchAPIResult(items=[SearchAPIItem(endpoint="GET /a"), SearchAPIItem(endpoint="GET /b")])
    assert format_task_result(search) == "找到接口 GET /a, GET /b"
    detail = APIDetailResult(endpoint=APIDetail(method="GET", path="/x"))
    assert format_task_result(detail) == "接口详情 GET /x"
    assert format_task_result("plain") == "plain"
    assert format_task_result({"ok": True}) == '{"ok":true}'


def test_summarize_plan_results():
    assert summarize_plan_results(None, {}) == "分析结果为空。"
    plan = ExecutionPlan(tasks=[Task(id="t1", description="d"), Task(id="t2", description="e")])
    assert summarize_plan_results(plan, {"t1": "r"}) == "分析结果:\n- 任务 t1（d）: r"