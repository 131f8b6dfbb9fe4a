import asyncio
import json
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from completion_gateway.config import GatewayConfig
from completion_gateway.llm_adapter.cache import ResponseCache
from completion_gateway.llm_adapter.models import CompletionRequest, Message, ResponseModel
from services.eval_runner.config import EvalConfig
from services.eval_runner.main import EvalTask, run_evaluation
from services.eval_runner.runner import (
    SummaryResult,
    Testcase,
    build_testcases,
    experiment_name,
    normalize_output,
    run_cases,
)
from services.eval_runner.summary import generate_summary, write_summary

CATEGORIES = {
    "extract-title": ["extraction", "text"],
    "describe-image": ["vision"],
    "classify": ["text"],
}


def _gateway_config(**overrides):
    cfg = GatewayConfig(
        llm_provider="mock",
        llm_model="",
        llm_api_key="",
        llm_base_url="",
        request_timeout=5.0,
        enable_caching=False,
        redis_url="",
        cache_ttl=60,
        structured_output="auto",
    )
    return replace(cfg, **overrides)


def _eval_config(tmp_path, **overrides):
    cfg = EvalConfig(
        enable_caching=False,
        max_concurrency=2,
        trial_count=1,
        summary_path=str(tmp_path / "out" / "summary.json"),
        environment="CI",
        project_name="completion-gateway-dev",
    )
    return replace(cfg, **overrides)


def test_build_testcases_selection():
    models = ["m1", "m2"]

    all_cases = build_testcases(CATEGORIES, models)
    assert len(all_cases) == 6

    text_cases = build_testcases(CATEGORIES, models, category="text")
    assert {c.name for c in text_cases} == {"extract-title", "classify"}
    assert len(text_cases) == 4

    single = build_testcases(CATEGORIES, ["m1"], eval_name="describe-image")
    assert single == [Testcase("describe-image", "m1", ("vision",))]


def test_experiment_name_format():
    now = datetime(2024, 3, 5, 14, 7, 9, tzinfo=timezone.utc)

    assert experiment_name(eval_name="Extract Title", environment="CI", now=now) == (
        "extract-title_ci_20240305-140709"
    )
    assert experiment_name(now=now) == "all_local_20240305-140709"


def test_normalize_output():
    assert normalize_output(True) == {"_success": True}
    assert normalize_output({"_success": True, "x": 1}) == {"_success": True, "x": 1}
    assert normalize_output("yes")["_success"] is False


@pytest.mark.asyncio
async def test_run_cases_converts_exceptions_and_respects_concurrency():
    in_flight = 0
    peak = 0

    async def task(case):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        if case.name == "boom":
            raise RuntimeError("exploded")
        return case.model_name == "good"

    cases = [
        Testcase("ok", "good"),
        Testcase("ok", "bad"),
        Testcase("boom", "good"),
    ]
    results = await run_cases(cases, task, max_concurrency=2, trial_count=2)

    assert len(results) == 6
    assert peak <= 2
    assert sum(r.score for r in results) == 2
    errors = [r.output for r in results if r.name == "boom"]
    assert errors == [{"_success": False, "error": "exploded"}] * 2


def test_generate_summary_percentages():
    results = [
        SummaryResult("extract-title", "m1", {"_success": True}),
        SummaryResult("extract-title", "m2", {"_success": False}),
        SummaryResult("classify", "m1", {"_success": True}),
        SummaryResult("classify", "m2", {"_success": True}),
    ]

    summary = generate_summary(results, "exp", CATEGORIES)

    assert summary["experimentName"] == "exp"
    assert len(summary["passed"]) == 3
    assert summary["failed"] == [
        {"eval": "extract-title", "model": "m2", "categories": ["extraction", "text"]}
    ]
    assert summary["categories"] == {"extraction": 50, "text": 75, "vision": 0}
    assert summary["models"] == {"m1": 100, "m2": 50}


def test_write_summary_creates_directories(tmp_path):
    path = tmp_path / "nested" / "summary.json"
    write_summary({"experimentName": "exp"}, str(path))
    assert json.loads(path.read_text()) == {"experimentName": "exp"}


async def _structured_task(gateway, case):
    request = CompletionRequest(
        messages=[Message(role="user", content=f"Extract a title for {case.name}")],
        response_model=ResponseModel(
            name="title",
            schema={"type": "object", "required": ["title"]},
        ),
    )
    result = await gateway.complete(request)
    return {"_success": "title" in result.data}


async def _text_task(gateway, case):
    response = await gateway.complete(
        CompletionRequest(messages=[Message(role="user", content="ping")])
    )
    return response.message.content.startswith("[MOCK]")


@pytest.mark.asyncio
async def test_run_evaluation_with_mock_provider(tmp_path):
    tasks = [
        EvalTask("classify", _text_task, ("text",)),
        EvalTask("extract-title", _structured_task, ("extraction", "text")),
    ]
    cfg = _eval_config(tmp_path)

    summary = await run_evaluation(tasks, ["mock-a", "mock-b"], cfg, _gateway_config())

    assert summary["experimentName"].startswith("completion-gateway-dev-all_ci_")
    assert summary["models"] == {"mock-a": 50, "mock-b": 50}
    assert summary["categories"] == {"text": 50, "extraction": 0}
    assert {row["eval"] for row in summary["failed"]} == {"extract-title"}

    written = json.loads((tmp_path / "out" / "summary.json").read_text())
    assert written == summary


@pytest.mark.asyncio
async def test_run_evaluation_single_eval_with_shared_cache(tmp_path, monkeypatch):
    calls = []
    close = AsyncMock()
    monkeypatch.setattr(ResponseCache, "close", close)

    async def task(gateway, case):
        calls.append(gateway.caching_enabled)
        return await _text_task(gateway, case)

    cfg = _eval_config(tmp_path, enable_caching=True, trial_count=3)
    summary = await run_evaluation(
        [EvalTask("classify", task, ("text",)), EvalTask("other", task)],
        ["mock-a"],
        cfg,
        _gateway_config(),
        eval_name="classify",
    )

    assert calls == [True, True, True]
    assert summary["models"] == {"mock-a": 100}
    close.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_evaluation_unknown_eval(tmp_path):
    with pytest.raises(ValueError, match="missing"):
        await run_evaluation(
            [EvalTask("classify", _text_task)],
            ["mock-a"],
            _eval_config(tmp_path),
            _gateway_config(),
            eval_name="missing",
        )
