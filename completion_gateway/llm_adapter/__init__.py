from completion_gateway.llm_adapter.base import LLMProvider
from completion_gateway.llm_adapter.cache import (
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResponseCache,
)
from completion_gateway.llm_adapter.errors import (
    CompletionRequestError,
    ConfigurationError,
    MalformedJSONError,
    MissingContentError,
    NoJSONFoundError,
    SchemaValidationError,
    StructuredOutputError,
)
from completion_gateway.llm_adapter.extraction import StructuredOutputExtractor
from completion_gateway.llm_adapter.factory import (
    build_gateway,
    build_provider,
    provider_for_model,
)
from completion_gateway.llm_adapter.fingerprint import fingerprint
from completion_gateway.llm_adapter.gateway import CompletionGateway
from completion_gateway.llm_adapter.mock_provider import MockProvider
from completion_gateway.llm_adapter.models import (
    CompletionRequest,
    CompletionResponse,
    ImageAttachment,
    ImagePart,
    Message,
    ResponseModel,
    Role,
    StructuredResult,
    TextPart,
    ToolSpec,
    Usage,
)

__all__ = [
    "LLMProvider",
    "CompletionGateway",
    "CompletionRequest",
    "CompletionResponse",
    "ImageAttachment",
    "ImagePart",
    "Message",
    "ResponseModel",
    "Role",
    "StructuredResult",
    "TextPart",
    "ToolSpec",
    "Usage",
    "ResponseCache",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "StructuredOutputExtractor",
    "MockProvider",
    "fingerprint",
    "build_gateway",
    "build_provider",
    "provider_for_model",
    "CompletionRequestError",
    "ConfigurationError",
    "StructuredOutputError",
    "MissingContentError",
    "NoJSONFoundError",
    "MalformedJSONError",
    "SchemaValidationError",
]
