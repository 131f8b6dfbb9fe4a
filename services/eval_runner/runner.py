"""
Evaluation task execution.

Runs every (task, model) test case `trial_count` times with at most
`max_concurrency` tasks in flight. A task that raises is recorded as a failed
result carrying the error message; it never aborts the run.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable

from completion_gateway.logging.logger import log_fields

logger = logging.getLogger(__name__)

EVAL_CATEGORY = "eval"


@dataclass(frozen=True)
class Testcase:
    __test__ = False

    name: str
    model_name: str
    categories: tuple[str, ...] = ()


@dataclass
class SummaryResult:
    name: str
    model_name: str
    output: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return bool(self.output.get("_success"))

    @property
    def score(self) -> int:
        return 1 if self.success else 0


TaskFunc = Callable[[Testcase], Awaitable[Any]]


def build_testcases(
    task_categories: dict[str, Iterable[str]],
    models: Iterable[str],
    category: str | None = None,
    eval_name: str | None = None,
) -> list[Testcase]:
    """Cross the selected tasks with every model."""
    if eval_name:
        names = [eval_name]
    elif category:
        names = [n for n, cats in task_categories.items() if category in cats]
    else:
        names = list(task_categories)

    return [
        Testcase(
            name=name,
            model_name=model,
            categories=tuple(task_categories.get(name, ())),
        )
        for model in models
        for name in names
    ]


def experiment_name(
    eval_name: str | None = None,
    category: str | None = None,
    environment: str = "LOCAL",
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    subject = eval_name or category or "all"
    slug = re.sub(r"[^a-z0-9]+", "-", subject.lower()).strip("-")
    return f"{slug}_{environment.lower()}_{now.strftime('%Y%m%d-%H%M%S')}"


def normalize_output(output: Any) -> dict[str, Any]:
    if isinstance(output, bool):
        return {"_success": output}
    if isinstance(output, dict):
        return output
    return {"_success": False, "error": f"Unexpected task output: {output!r}"}


async def run_cases(
    cases: list[Testcase],
    task: TaskFunc,
    max_concurrency: int = 1,
    trial_count: int = 1,
) -> list[SummaryResult]:
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _run(case: Testcase) -> SummaryResult:
        async with semaphore:
            try:
                output = normalize_output(await task(case))
            except Exception as exc:
                logger.exception(
                    "Error in task %s",
                    case.name,
                    extra=log_fields(EVAL_CATEGORY, model=case.model_name),
                )
                output = {"_success": False, "error": str(exc)}

        result = SummaryResult(name=case.name, model_name=case.model_name, output=output)
        logger.info(
            "%s (%s): %s",
            case.name,
            case.model_name,
            "PASSED" if result.success else "FAILED",
            extra=log_fields(EVAL_CATEGORY, model=case.model_name),
        )
        return result

    jobs = [_run(case) for case in cases for _ in range(max(1, trial_count))]
    return list(await asyncio.gather(*jobs))
