"""
Deterministic mock LLM provider for testing and development.

Without a script it always returns the same text for the same messages,
making the pipeline reproducible without network calls. With a script it
replays the given replies in order (the last one repeats), where each reply
is a content string, a full CompletionResponse, or an exception to raise.
"""

from __future__ import annotations

import hashlib
import json
from typing import Sequence, Union

from completion_gateway.llm_adapter.base import LLMProvider
from completion_gateway.llm_adapter.models import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    ResponseMessage,
    Usage,
)

_MOCK_PREFIX = "[MOCK] "

ScriptedReply = Union[str, CompletionResponse, BaseException]


class MockProvider(LLMProvider):

    provider_name = "mock"

    def __init__(
        self,
        script: Sequence[ScriptedReply] | None = None,
        model: str = "mock-deterministic",
    ) -> None:
        self.model_name = model
        self._script = list(script or [])
        self.call_count = 0
        self.requests: list[CompletionRequest] = []

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.call_count += 1
        self.requests.append(request)

        if self._script:
            reply = self._script[min(self.call_count, len(self._script)) - 1]
            if isinstance(reply, BaseException):
                raise reply
            if isinstance(reply, CompletionResponse):
                return reply
            return self._text_response(request, reply)

        prompt_hash = _messages_hash(request)
        content = (
            f"{_MOCK_PREFIX}Deterministic response for prompt hash "
            f"{prompt_hash[:12]}."
        )
        return self._text_response(request, content)

    def _text_response(self, request: CompletionRequest, content: str) -> CompletionResponse:
        prompt_tokens = sum(
            len(m.content.split()) if isinstance(m.content, str) else len(m.content)
            for m in request.messages
        )
        completion_tokens = len(content.split())
        return CompletionResponse(
            id=f"mock-{self.call_count}",
            created=0,
            model=request.model or self.model_name,
            choices=[Choice(message=ResponseMessage(content=content))],
            usage=Usage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )


def _messages_hash(request: CompletionRequest) -> str:
    raw = json.dumps(
        [m.model_dump(mode="json") for m in request.messages], sort_keys=True
    )
    return hashlib.sha256(raw.encode()).hexdigest()
