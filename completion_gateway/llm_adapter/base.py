"""Abstract base class that all LLM providers must implement."""

from __future__ import annotations

from abc import ABC, abstractmethod

from completion_gateway.llm_adapter.models import CompletionRequest, CompletionResponse


class LLMProvider(ABC):
    """
    Contract for vendor adapters.

    Every implementation MUST:
    - Make one vendor call per invocation. The only second call allowed is the
      schema-instruction retry after the vendor rejects native structured output
    - Return a fully populated CompletionResponse including token counts
    - Raise CompletionRequestError on transport, auth or malformed replies
    """

    provider_name: str = "base"
    model_name: str = ""

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send the request and return the vendor reply in canonical form."""
