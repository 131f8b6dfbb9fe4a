"""Data models for the LLM adapter layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = Annotated[Union[TextPart, ImagePart], Field(discriminator="type")]


class Message(BaseModel):
    role: Role
    content: str | list[ContentPart]


class ToolSpec(BaseModel):
    """
    Function the model may call.

    `parameters` is a JSON Schema object; only `properties` and `required`
    are forwarded to the vendor.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)


class ImageAttachment(BaseModel):
    buffer: bytes
    description: str | None = None


@dataclass(frozen=True)
class ResponseModel:
    """
    The exact shape the caller wants decoded and validated.

    `schema` is either a Pydantic model class or a JSON Schema document.
    """

    name: str
    schema: Any

    @property
    def is_model_class(self) -> bool:
        return isinstance(self.schema, type) and issubclass(self.schema, BaseModel)

    def json_schema(self) -> dict[str, Any]:
        """Return the schema as a JSON Schema document."""
        if self.is_model_class:
            return self.schema.model_json_schema()
        if isinstance(self.schema, dict):
            return self.schema
        raise TypeError(
            f"Unsupported schema for response model '{self.name}': "
            f"{type(self.schema).__name__}"
        )


ToolChoice = Union[Literal["auto", "none", "required"], dict[str, Any]]


class CompletionRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    messages: list[Message]
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    max_tokens: int | None = Field(default=None, ge=1)
    tools: list[ToolSpec] | None = None
    tool_choice: ToolChoice | None = None
    image: ImageAttachment | None = None
    response_model: ResponseModel | None = None
    request_id: str = ""
    retries: NonNegativeInt = 0


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    id: str = ""
    type: Literal["function"] = "function"
    function: FunctionCall


class ResponseMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)


class Choice(BaseModel):
    index: int = 0
    message: ResponseMessage
    finish_reason: str = "stop"


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice] = Field(min_length=1, max_length=1)
    usage: Usage = Field(default_factory=Usage)

    @property
    def choice(self) -> Choice:
        return self.choices[0]

    @property
    def message(self) -> ResponseMessage:
        return self.choices[0].message


class StructuredResult(BaseModel):
    """Validated structured output plus the usage of the attempt that produced it."""

    data: Any
    usage: Usage = Field(default_factory=Usage)
