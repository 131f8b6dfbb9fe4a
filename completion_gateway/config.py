from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class GatewayConfig:
    llm_provider: str
    llm_model: str
    llm_api_key: str
    llm_base_url: str
    request_timeout: float
    enable_caching: bool
    redis_url: str
    cache_ttl: int
    structured_output: str

    @classmethod
    def from_env(cls) -> GatewayConfig:
        return cls(
            llm_provider=os.environ.get("LLM_PROVIDER", "").lower(),
            llm_model=os.environ.get("LLM_MODEL", ""),
            llm_api_key=os.environ.get("LLM_API_KEY", ""),
            llm_base_url=os.environ.get("LLM_BASE_URL", ""),
            request_timeout=float(os.environ.get("LLM_REQUEST_TIMEOUT", "120")),
            enable_caching=(
                _env_flag("LLM_ENABLE_CACHING") or _env_flag("EVAL_ENABLE_CACHING")
            ),
            redis_url=os.environ.get("REDIS_URL", ""),
            cache_ttl=int(os.environ.get("LLM_CACHE_TTL", "86400")),
            structured_output=os.environ.get("LLM_STRUCTURED_OUTPUT", "auto").lower(),
        )
