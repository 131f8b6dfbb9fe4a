"""Aggregate evaluation results into a pass/fail summary."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from services.eval_runner.runner import SummaryResult

logger = logging.getLogger(__name__)


def _percent(success: int, total: int) -> int:
    if total == 0:
        return 0
    return round(success / total * 100)


def generate_summary(
    results: list[SummaryResult],
    experiment_name: str,
    categories_by_task: dict[str, list[str]],
) -> dict[str, Any]:
    """
    Build the summary document.

    `categories` and `models` map to the integer percentage of successful
    results in that category / for that model.
    """
    passed = []
    failed = []
    for r in results:
        row = {
            "eval": r.name,
            "model": r.model_name,
            "categories": categories_by_task.get(r.name, []),
        }
        (passed if r.success else failed).append(row)

    category_counts: dict[str, list[int]] = {}
    for task_name, categories in categories_by_task.items():
        task_results = [r for r in results if r.name == task_name]
        successes = sum(1 for r in task_results if r.success)
        for cat in categories:
            counts = category_counts.setdefault(cat, [0, 0])
            counts[0] += successes
            counts[1] += len(task_results)

    models: dict[str, int] = {}
    for model in dict.fromkeys(r.model_name for r in results):
        model_results = [r for r in results if r.model_name == model]
        successes = sum(1 for r in model_results if r.success)
        models[model] = _percent(successes, len(model_results))

    return {
        "experimentName": experiment_name,
        "passed": passed,
        "failed": failed,
        "categories": {
            cat: _percent(success, total)
            for cat, (success, total) in category_counts.items()
        },
        "models": models,
    }


def write_summary(summary: dict[str, Any], path: str) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(summary, f, indent=2)
    logger.info("Evaluation summary written to %s", path)
