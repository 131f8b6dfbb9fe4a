from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class EvalConfig:
    enable_caching: bool
    max_concurrency: int
    trial_count: int
    summary_path: str
    environment: str
    project_name: str

    @classmethod
    def from_env(cls) -> EvalConfig:
        ci = os.environ.get("CI", "").lower() == "true"
        return cls(
            enable_caching=os.environ.get("EVAL_ENABLE_CACHING", "").lower() == "true",
            max_concurrency=int(os.environ.get("EVAL_MAX_CONCURRENCY", "1")),
            trial_count=int(os.environ.get("EVAL_TRIAL_COUNT", "1")),
            summary_path=os.environ.get("EVAL_SUMMARY_PATH", "eval-summary.json"),
            environment=os.environ.get("EVAL_ENV", "LOCAL"),
            project_name="completion-gateway" if ci else "completion-gateway-dev",
        )
