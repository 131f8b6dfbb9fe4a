"""
Shared fixtures for the completion gateway tests.
"""

import httpx
import pytest
from completion_gateway.llm_adapter.models import (
    Choice,
    CompletionRequest,
    CompletionResponse,
    FunctionCall,
    Message,
    ResponseMessage,
    ResponseModel,
    ToolCall,
    Usage,
)
from tests.helpers import Extraction, RecordingTransport


@pytest.fixture
def extraction_model():
    return ResponseModel(name="extraction", schema=Extraction)


@pytest.fixture
def make_request():
    def _make(content="Extract the value of a.", **kwargs):
        return CompletionRequest(
            messages=[
                Message(role="system", content="You extract data from pages."),
                Message(role="user", content=content),
            ],
            **kwargs,
        )

    return _make


@pytest.fixture
def make_response():
    def _make(content=None, tool_arguments=None, usage=(10, 5)):
        tool_calls = []
        if tool_arguments is not None:
            tool_calls.append(
                ToolCall(
                    id="call_1",
                    function=FunctionCall(name="extract", arguments=tool_arguments),
                )
            )
        return CompletionResponse(
            id="resp-1",
            created=1700000000,
            model="test-model",
            choices=[
                Choice(message=ResponseMessage(content=content, tool_calls=tool_calls))
            ],
            usage=Usage(
                prompt_tokens=usage[0],
                completion_tokens=usage[1],
                total_tokens=usage[0] + usage[1],
            ),
        )

    return _make


@pytest.fixture
def transport_factory():
    def _make(*responses):
        recorder = RecordingTransport(responses)
        client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
        return recorder, client

    return _make
