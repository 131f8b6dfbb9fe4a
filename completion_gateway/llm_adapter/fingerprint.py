"""Deterministic cache keys for completion requests."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from completion_gateway.llm_adapter.models import CompletionRequest

KEY_PREFIX = "llm_cache:"

# Dropped from the dump; model, image and response_model are re-added below
# in canonical form.
_EXCLUDED_FIELDS = {"request_id", "retries", "model", "image", "response_model"}


def fingerprint_payload(request: CompletionRequest, model: str) -> dict[str, Any]:
    """Return the canonical dict of every field that can change model output."""
    payload = request.model_dump(mode="json", exclude=_EXCLUDED_FIELDS)
    payload["model"] = request.model or model

    if request.image is not None:
        payload["image"] = {
            "sha256": hashlib.sha256(request.image.buffer).hexdigest(),
            "description": request.image.description,
        }
    else:
        payload["image"] = None

    if request.response_model is not None:
        payload["response_model"] = {
            "name": request.response_model.name,
            "schema": request.response_model.json_schema(),
        }
    else:
        payload["response_model"] = None

    return payload


def fingerprint(request: CompletionRequest, model: str) -> str:
    """Produce a stable cache key by hashing the canonical payload with sorted keys."""
    normalized = json.dumps(
        fingerprint_payload(request, model),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return f"{KEY_PREFIX}{hashlib.sha256(normalized.encode()).hexdigest()}"
