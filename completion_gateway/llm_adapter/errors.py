"""Error taxonomy for the completion pipeline."""

from __future__ import annotations

import json
from typing import Any

_RAW_TEXT_PREVIEW = 500


class ConfigurationError(ValueError):
    """Raised when a provider cannot be built from the given settings."""


class CompletionRequestError(RuntimeError):
    """Transport, authentication or vendor failure. Recoverable by retry."""

    def __init__(self, message: str, *, request_id: str = "") -> None:
        super().__init__(message)
        self.request_id = request_id


class StructuredOutputError(CompletionRequestError):
    """
    Base for failures decoding a schema-shaped reply.

    Carries the expected schema and the raw offending text so a persistent
    decoding mismatch can be debugged from the terminal error alone.
    """

    def __init__(
        self,
        message: str,
        *,
        schema_name: str = "",
        schema: dict[str, Any] | None = None,
        raw_text: str | None = None,
        request_id: str = "",
    ) -> None:
        super().__init__(message, request_id=request_id)
        self.schema_name = schema_name
        self.schema = schema or {}
        self.raw_text = raw_text

    def __str__(self) -> str:
        base = super().__str__()
        parts = [base]
        if self.schema_name:
            parts.append(f"schema={self.schema_name}")
        if self.schema:
            parts.append(f"expected={json.dumps(self.schema, sort_keys=True)}")
        if self.raw_text is not None:
            preview = self.raw_text[:_RAW_TEXT_PREVIEW]
            if len(self.raw_text) > _RAW_TEXT_PREVIEW:
                preview += "..."
            parts.append(f"raw={preview!r}")
        return " | ".join(parts)


class MissingContentError(StructuredOutputError):
    """Reply had neither message content nor tool call arguments."""


class NoJSONFoundError(StructuredOutputError):
    """No JSON object could be located in the reply text."""


class MalformedJSONError(StructuredOutputError):
    """A JSON object was located but failed to parse."""


class SchemaValidationError(StructuredOutputError):
    """Parsed value does not conform to the requested schema."""

    def __init__(self, message: str, *, diagnostic: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.diagnostic = diagnostic
