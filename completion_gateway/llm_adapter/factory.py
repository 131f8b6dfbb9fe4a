"""
Provider factory -- single entry point for building gateways.

Reads GatewayConfig and returns a
CompletionGateway wrapping the chosen backend, with a ResponseCache attached
when caching is enabled.

Supported providers:

  mock        Built-in deterministic mock, no API key needed
  openrouter  OpenRouter  -- needs LLM_API_KEY or OPENROUTER_API_KEY (default)
  openai      OpenAI API  -- needs LLM_API_KEY or OPENAI_API_KEY
  groq        Groq API    -- needs LLM_API_KEY or GROQ_API_KEY
  gemini      Google AI   -- needs LLM_API_KEY or GOOGLE_GENERATIVE_AI_API_KEY
  together    Together AI -- needs LLM_API_KEY or TOGETHER_AI_API_KEY
  local       Any OpenAI-compatible local server (no key required)

When no provider is given explicitly, `provider_for_model` picks one from the
model name.
"""

from __future__ import annotations

import logging

from completion_gateway.config import GatewayConfig
from completion_gateway.llm_adapter.base import LLMProvider
from completion_gateway.llm_adapter.cache import ResponseCache
from completion_gateway.llm_adapter.errors import ConfigurationError
from completion_gateway.llm_adapter.gateway import CompletionGateway
from completion_gateway.llm_adapter.mock_provider import MockProvider

logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE = {"openrouter", "openai", "groq", "gemini", "together", "local"}
PROVIDERS = {"mock"} | OPENAI_COMPATIBLE

_OPENAI_MODEL_PREFIXES = ("gpt", "o1", "o3", "o4")


def provider_for_model(model_name: str) -> str:
    """Route a model name to the vendor that serves it."""
    name = model_name.lower()
    if name.startswith(_OPENAI_MODEL_PREFIXES):
        return "openai"
    if name.startswith("gemini"):
        return "gemini"
    if "groq" in name:
        return "groq"
    return "openrouter"


def build_provider(
    config: GatewayConfig,
    provider_name: str | None = None,
    model: str | None = None,
) -> LLMProvider:
    """
    Instantiate the adapter for a provider.

    Args:
        config:        Process configuration.
        provider_name: Explicit provider; wins over config and model routing.
        model:         Model override; routes the provider when none is explicit.
    """
    model = model or config.llm_model or None
    if provider_name:
        name = provider_name.lower()
    elif config.llm_provider:
        name = config.llm_provider
    elif model:
        name = provider_for_model(model)
    else:
        name = "openrouter"

    if name not in PROVIDERS:
        raise ConfigurationError(
            f"Unknown LLM provider '{name}'. "
            f"Available: {', '.join(sorted(PROVIDERS))}"
        )

    if name == "mock":
        return MockProvider(model=model or "mock-deterministic")

    from completion_gateway.llm_adapter.openai_provider import OpenAIProvider

    return OpenAIProvider(
        api_key=config.llm_api_key or None,
        base_url=config.llm_base_url or None,
        model=model,
        provider_name=name,
        structured_output=config.structured_output,
        timeout=config.request_timeout,
    )


def build_gateway(
    config: GatewayConfig | None = None,
    provider_name: str | None = None,
    model: str | None = None,
    cache: ResponseCache | None = None,
) -> CompletionGateway:
    """
    Return a CompletionGateway for the configured backend.

    A cache passed in is used as-is; otherwise one is created from the config
    (Redis when REDIS_URL is set) only if caching is enabled.
    """
    config = config or GatewayConfig.from_env()
    provider = build_provider(config, provider_name=provider_name, model=model)

    if cache is None and config.enable_caching:
        cache = ResponseCache.from_url(config.redis_url or None, ttl=config.cache_ttl)

    logger.info(
        "LLM gateway initialized: %s (model=%s, cached=%s, redis=%s)",
        provider.provider_name,
        provider.model_name,
        cache is not None,
        bool(config.redis_url) and cache is not None,
    )
    return CompletionGateway(provider, cache=cache)
