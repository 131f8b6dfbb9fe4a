"""
Completion gateway: cache lookup -> provider call -> structured extraction
-> cache write, with a bounded retry over the whole pipeline.

Each attempt is independent: a fresh provider call and a fresh extraction.
There is no backoff between attempts; the budget is `request.retries`.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from pydantic import ValidationError

from completion_gateway.llm_adapter.base import LLMProvider
from completion_gateway.llm_adapter.cache import ResponseCache
from completion_gateway.llm_adapter.errors import CompletionRequestError
from completion_gateway.llm_adapter.extraction import StructuredOutputExtractor
from completion_gateway.llm_adapter.models import (
    CompletionRequest,
    CompletionResponse,
    StructuredResult,
    Usage,
)
from completion_gateway.logging.logger import log_fields
from completion_gateway.observability.metrics import completion_attempts, llm_tokens

logger = logging.getLogger(__name__)

GATEWAY_CATEGORY = "llm_gateway"

GatewayResult = Union[CompletionResponse, StructuredResult]


class CompletionGateway:
    """Orchestrates one provider behind an optional response cache."""

    def __init__(
        self,
        provider: LLMProvider,
        cache: ResponseCache | None = None,
    ) -> None:
        self._provider = provider
        self._cache = cache

    @property
    def provider(self) -> LLMProvider:
        return self._provider

    @property
    def caching_enabled(self) -> bool:
        return self._cache is not None

    async def complete(self, request: CompletionRequest) -> GatewayResult:
        model = request.model or self._provider.model_name

        if self._cache is not None:
            cached = await self._cache.get(request, model)
            if cached is not None:
                result = self._rehydrate(request, cached)
                if result is not None:
                    return result

        attempts = request.retries + 1
        last_error: CompletionRequestError | None = None

        for attempt in range(1, attempts + 1):
            try:
                result = await self._attempt(request)
            except CompletionRequestError as exc:
                last_error = exc
                self._record_attempt("failure")
                remaining = attempts - attempt
                logger.warning(
                    "Completion attempt %d/%d failed (%s): %s",
                    attempt,
                    attempts,
                    type(exc).__name__,
                    exc,
                    extra=log_fields(
                        GATEWAY_CATEGORY,
                        request.request_id,
                        attempt=attempt,
                        remaining=remaining,
                    ),
                )
                if remaining:
                    logger.info(
                        "Retrying completion, %d attempts remaining",
                        remaining,
                        extra=log_fields(GATEWAY_CATEGORY, request.request_id),
                    )
                continue

            self._record_attempt("success")
            if self._cache is not None:
                await self._cache.set(request, model, self._serialize(result))
            return result

        if last_error is None:
            raise CompletionRequestError(
                "No completion attempt was made", request_id=request.request_id
            )
        logger.error(
            "Completion failed after %d attempt(s): %s",
            attempts,
            last_error,
            extra=log_fields(GATEWAY_CATEGORY, request.request_id),
        )
        raise last_error

    async def complete_structured(self, request: CompletionRequest) -> StructuredResult:
        """Like `complete`, for requests that carry a response model."""
        if request.response_model is None:
            raise ValueError("complete_structured requires request.response_model")
        result = await self.complete(request)
        if not isinstance(result, StructuredResult):
            raise TypeError(
                f"Expected a StructuredResult, got {type(result).__name__}"
            )
        return result

    async def _attempt(self, request: CompletionRequest) -> GatewayResult:
        response = await self._provider.complete(request)
        self._record_usage(response.usage)

        if request.response_model is None:
            message = response.message
            if message.content is None and not message.tool_calls:
                raise CompletionRequestError(
                    f"{self._provider.provider_name} returned neither content "
                    "nor tool calls",
                    request_id=request.request_id,
                )
            return response

        extractor = StructuredOutputExtractor(
            request.response_model, request_id=request.request_id
        )
        return extractor.extract(response)

    def _rehydrate(
        self, request: CompletionRequest, entry: dict[str, Any]
    ) -> GatewayResult | None:
        """
        Rebuild the stored result without re-running extraction.

        The stored data already passed validation when it was written; the
        pydantic round trip only restores model instances (nested ones
        included), so a hit equals the fresh result. An entry that cannot be
        rebuilt is treated as a miss.
        """
        try:
            if request.response_model is None:
                return CompletionResponse.model_validate(entry)
            data = entry["data"]
            if request.response_model.is_model_class:
                data = request.response_model.schema.model_validate(data)
            return StructuredResult(data=data, usage=Usage.model_validate(entry["usage"]))
        except (KeyError, TypeError, ValidationError) as exc:
            logger.warning(
                "Discarding unreadable cache entry: %s",
                exc,
                extra=log_fields("llm_cache", request.request_id),
            )
            return None

    @staticmethod
    def _serialize(result: GatewayResult) -> dict[str, Any]:
        return result.model_dump(mode="json")

    def _record_attempt(self, outcome: str) -> None:
        completion_attempts.labels(
            provider=self._provider.provider_name, outcome=outcome
        ).inc()

    def _record_usage(self, usage: Usage) -> None:
        provider = self._provider.provider_name
        if usage.prompt_tokens:
            llm_tokens.labels(provider=provider, direction="prompt").inc(
                usage.prompt_tokens
            )
        if usage.completion_tokens:
            llm_tokens.labels(provider=provider, direction="completion").inc(
                usage.completion_tokens
            )
