"""Test helpers: response models and canned vendor replies for the OpenAI client."""

import json

import httpx
from pydantic import BaseModel


class Extraction(BaseModel):
    a: int


def chat_completion_body(content="hello", tool_calls=None, finish_reason="stop", usage=True):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    body = {
        "id": "chatcmpl-123",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "vendor-model",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
    }
    if usage:
        body["usage"] = {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15}
    return body


class RecordingTransport:
    """Serves queued responses to the OpenAI client and records request bodies."""

    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        return httpx.Response(status, json=body)

    def body(self, index=-1):
        return json.loads(self.requests[index].content)
