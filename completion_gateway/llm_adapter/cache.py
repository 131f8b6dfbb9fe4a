"""
LLM response caching layer.

Keys are request fingerprints; identical requests (modulo request_id) return
the stored entry without calling the provider. The cache never fails the
pipeline: any backend error is logged and treated as a miss.

Two backends:
- In-memory dict (default, for dev/testing)
- Redis (for sharing entries across processes and restarts)
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

from completion_gateway.llm_adapter.fingerprint import fingerprint
from completion_gateway.llm_adapter.models import CompletionRequest
from completion_gateway.logging.logger import log_fields
from completion_gateway.observability.metrics import cache_events

logger = logging.getLogger(__name__)

CACHE_CATEGORY = "llm_cache"
DEFAULT_TTL_SECONDS = 86400


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class InMemoryCacheBackend:
    """Process-local store. No eviction."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._store[key] = value

    def __len__(self) -> int:
        return len(self._store)


class RedisCacheBackend:
    """Redis-backed store; entries expire after `ttl` seconds."""

    def __init__(self, redis_url: str, ttl: int = DEFAULT_TTL_SECONDS) -> None:
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(redis_url, decode_responses=True)
        self._ttl = ttl

    async def get(self, key: str) -> str | None:
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        await self._redis.set(key, value, ex=self._ttl)

    async def close(self) -> None:
        await self._redis.aclose()


class ResponseCache:
    """Fingerprint-keyed store of completion results over a pluggable backend."""

    def __init__(self, backend: CacheBackend | None = None) -> None:
        self._backend = backend if backend is not None else InMemoryCacheBackend()

    @classmethod
    def from_url(
        cls, redis_url: str | None, ttl: int = DEFAULT_TTL_SECONDS
    ) -> ResponseCache:
        """Use Redis when a URL is given, the in-memory store otherwise."""
        if redis_url:
            return cls(RedisCacheBackend(redis_url, ttl=ttl))
        return cls()

    async def close(self) -> None:
        """Release the backend connection, if it holds one."""
        close = getattr(self._backend, "close", None)
        if close is not None:
            await close()

    async def get(self, request: CompletionRequest, model: str) -> dict[str, Any] | None:
        key = fingerprint(request, model)
        try:
            raw = await self._backend.get(key)
        except Exception as exc:
            cache_events.labels(event="error").inc()
            logger.warning(
                "LLM cache read failed, treating as miss: %s",
                exc,
                extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
            )
            return None

        if raw is None:
            cache_events.labels(event="miss").inc()
            logger.debug(
                "LLM cache miss - no cached response found",
                extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
            )
            return None

        try:
            entry = json.loads(raw)
        except json.JSONDecodeError as exc:
            cache_events.labels(event="error").inc()
            logger.warning(
                "LLM cache entry is not valid JSON, treating as miss: %s",
                exc,
                extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
            )
            return None

        cache_events.labels(event="hit").inc()
        logger.info(
            "LLM cache hit - returning cached response",
            extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
        )
        return entry

    async def set(
        self, request: CompletionRequest, model: str, entry: dict[str, Any]
    ) -> None:
        key = fingerprint(request, model)
        try:
            await self._backend.set(key, json.dumps(entry, default=str))
        except Exception as exc:
            cache_events.labels(event="error").inc()
            logger.warning(
                "LLM cache write failed, entry dropped: %s",
                exc,
                extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
            )
            return

        cache_events.labels(event="write").inc()
        logger.debug(
            "LLM cache write",
            extra=log_fields(CACHE_CATEGORY, request.request_id, key=key[:24]),
        )
