"""
Structured output extraction.

Turns a raw completion into a schema-validated value:

  content (or first tool call arguments)
    -> direct JSON parse, else fence stripping + first balanced {...} span
    -> JSON parse
    -> validation against the response model
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from jsonschema import validators
from jsonschema.exceptions import best_match
from pydantic import ValidationError

from completion_gateway.llm_adapter.errors import (
    MalformedJSONError,
    MissingContentError,
    NoJSONFoundError,
    SchemaValidationError,
)
from completion_gateway.llm_adapter.models import (
    CompletionResponse,
    ResponseModel,
    StructuredResult,
)

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text)


def find_json_object(text: str) -> str | None:
    """
    Return the first balanced ``{...}`` span in `text`, or None.

    Single pass over the text. Quotes only open strings inside a candidate
    object, so stray quotes in the surrounding prose are ignored.
    An opening brace that never closes is skipped in favour of the earliest
    span that does.
    """
    open_starts: list[int] = []
    best: tuple[int, int] | None = None
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == "{":
            open_starts.append(i)
        elif ch == "}" and open_starts:
            start = open_starts.pop()
            if not open_starts:
                return text[start : i + 1]
            if best is None or start < best[0]:
                best = (start, i)
        elif ch == '"' and open_starts:
            in_string = True

    if best is None:
        return None
    return text[best[0] : best[1] + 1]


class StructuredOutputExtractor:
    """Decodes and validates one completion against one response model."""

    def __init__(self, response_model: ResponseModel, request_id: str = "") -> None:
        self._model = response_model
        self._request_id = request_id
        self._schema = response_model.json_schema()

    def extract(self, response: CompletionResponse) -> StructuredResult:
        raw = self.await_content(response)
        parsed = self.parse(raw)
        data = self.validate(parsed, raw)
        return StructuredResult(data=data, usage=response.usage)

    def await_content(self, response: CompletionResponse) -> str:
        message = response.message
        if message.content:
            return message.content
        if message.tool_calls:
            logger.debug(
                "No message content, extracting from tool call %s",
                message.tool_calls[0].function.name,
            )
            return message.tool_calls[0].function.arguments
        raise MissingContentError(
            "No content or tool calls found in response",
            **self._context(None),
        )

    def parse(self, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            first_error = exc

        span = find_json_object(strip_code_fences(raw))
        if span is None:
            raise NoJSONFoundError(
                f"No JSON found in response: {first_error}",
                **self._context(raw),
            )

        try:
            return json.loads(span)
        except json.JSONDecodeError as exc:
            raise MalformedJSONError(
                f"Failed to parse response as JSON: {exc}",
                **self._context(raw),
            ) from exc

    def validate(self, parsed: Any, raw: str) -> Any:
        if self._model.is_model_class:
            try:
                return self._model.schema.model_validate(parsed)
            except ValidationError as exc:
                raise SchemaValidationError(
                    "Response failed schema validation",
                    diagnostic=str(exc),
                    **self._context(raw),
                ) from exc

        validator_cls = validators.validator_for(self._schema)
        error = best_match(validator_cls(self._schema).iter_errors(parsed))
        if error is not None:
            location = "/".join(str(p) for p in error.absolute_path) or "<root>"
            raise SchemaValidationError(
                f"Response failed schema validation at {location}: {error.message}",
                diagnostic=error.message,
                **self._context(raw),
            )
        return parsed

    def _context(self, raw: str | None) -> dict[str, Any]:
        return {
            "schema_name": self._model.name,
            "schema": self._schema,
            "raw_text": raw,
            "request_id": self._request_id,
        }
