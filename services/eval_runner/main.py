"""
Evaluation runner -- drives registered eval tasks against one gateway per
model and writes a summary.

Pipeline role:
  task registry x model list -> run_cases -> generate_summary -> JSON file

Each task receives the CompletionGateway built for its model plus the test
case. All gateways of a run share one ResponseCache when caching is enabled,
so identical requests across trials are served from the cache.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from completion_gateway.config import GatewayConfig
from completion_gateway.llm_adapter import CompletionGateway, ResponseCache, build_gateway
from completion_gateway.logging.logger import setup_logging
from services.eval_runner.config import EvalConfig
from services.eval_runner.runner import (
    SummaryResult,
    Testcase,
    build_testcases,
    experiment_name,
    run_cases,
)
from services.eval_runner.summary import generate_summary, write_summary

SERVICE_NAME = "eval_runner"
logger = logging.getLogger(SERVICE_NAME)

EvalTaskFunc = Callable[[CompletionGateway, Testcase], Awaitable[Any]]


@dataclass(frozen=True)
class EvalTask:
    name: str
    func: EvalTaskFunc
    categories: tuple[str, ...] = ()


async def run_evaluation(
    tasks: list[EvalTask],
    models: list[str],
    cfg: EvalConfig | None = None,
    gateway_cfg: GatewayConfig | None = None,
    category: str | None = None,
    eval_name: str | None = None,
) -> dict[str, Any]:
    cfg = cfg or EvalConfig.from_env()
    gateway_cfg = gateway_cfg or GatewayConfig.from_env()

    registry = {task.name: task for task in tasks}
    if eval_name and eval_name not in registry:
        raise ValueError(f"No eval task named '{eval_name}'")

    categories_by_task = {name: list(t.categories) for name, t in registry.items()}
    cases = build_testcases(categories_by_task, models, category=category, eval_name=eval_name)

    cache = (
        ResponseCache.from_url(gateway_cfg.redis_url or None, ttl=gateway_cfg.cache_ttl)
        if cfg.enable_caching
        else None
    )
    gateways: dict[str, CompletionGateway] = {}

    def _gateway_for(model: str) -> CompletionGateway:
        if model not in gateways:
            gateways[model] = build_gateway(gateway_cfg, model=model, cache=cache)
        return gateways[model]

    async def _task(case: Testcase) -> Any:
        return await registry[case.name].func(_gateway_for(case.model_name), case)

    name = f"{cfg.project_name}-" + experiment_name(
        eval_name=eval_name, category=category, environment=cfg.environment
    )
    logger.info(
        "Starting evaluation %s: %d cases, concurrency=%d, trials=%d",
        name,
        len(cases),
        cfg.max_concurrency,
        cfg.trial_count,
    )

    try:
        results: list[SummaryResult] = await run_cases(
            cases,
            _task,
            max_concurrency=cfg.max_concurrency,
            trial_count=cfg.trial_count,
        )
    finally:
        if cache is not None:
            await cache.close()

    summary = generate_summary(results, name, categories_by_task)
    write_summary(summary, cfg.summary_path)
    return summary


async def main(tasks: list[EvalTask], models: list[str]) -> dict[str, Any]:
    setup_logging(SERVICE_NAME)
    return await run_evaluation(tasks, models)
