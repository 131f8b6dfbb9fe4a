"""
OpenAI-compatible LLM provider.

Works with any API that speaks the OpenAI Chat Completions protocol:
  - OpenRouter  (base_url=https://openrouter.ai/api/v1)           -- default
  - OpenAI      (base_url=https://api.openai.com/v1)
  - Groq        (base_url=https://api.groq.com/openai/v1)
  - Google      (base_url=https://generativelanguage.googleapis.com/v1beta/openai)
  - Together    (base_url=https://api.together.xyz/v1)
  - local       any OpenAI-compatible server (Ollama / LM Studio)

Structured output is negotiated per call: native json_schema decoding is
requested when the vendor supports it, and a vendor rejection falls back to
prompt-injected schema instructions within the same attempt.
"""

from __future__ import annotations

import base64
import json
import logging
import os
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI
from pydantic import ValidationError

from completion_gateway.llm_adapter.base import LLMProvider
from completion_gateway.llm_adapter.errors import (
    CompletionRequestError,
    ConfigurationError,
)
from completion_gateway.llm_adapter.models import (
    CompletionRequest,
    CompletionResponse,
    Choice,
    FunctionCall,
    ImageAttachment,
    ImagePart,
    Message,
    ResponseMessage,
    ResponseModel,
    Role,
    TextPart,
    ToolCall,
    ToolSpec,
    Usage,
)
from completion_gateway.logging.logger import log_fields

logger = logging.getLogger(__name__)

_BASE_URLS: dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai":     "https://api.openai.com/v1",
    "groq":       "https://api.groq.com/openai/v1",
    "gemini":     "https://generativelanguage.googleapis.com/v1beta/openai/",
    "together":   "https://api.together.xyz/v1",
    "local":      "http://localhost:11434/v1",
}

_DEFAULT_MODELS: dict[str, str] = {
    "openrouter": "x-ai/grok-4",
    "openai":     "gpt-4o-mini",
    "groq":       "llama-3.3-70b-versatile",
    "gemini":     "gemini-2.0-flash",
    "together":   "meta-llama/Llama-3.3-70B-Instruct-Turbo",
    "local":      "llama3.2",
}

_API_KEY_ENVS: dict[str, str] = {
    "openrouter": "OPENROUTER_API_KEY",
    "openai":     "OPENAI_API_KEY",
    "groq":       "GROQ_API_KEY",
    "gemini":     "GOOGLE_GENERATIVE_AI_API_KEY",
    "together":   "TOGETHER_AI_API_KEY",
}

# Vendors that accept response_format=json_schema for every model they serve.
_NATIVE_STRUCTURED_PROVIDERS = {"openai", "gemini"}

# A 400/422 only counts as a native structured-output rejection when the
# vendor error names the feature.
_NATIVE_REJECTION_MARKERS = ("response_format", "json_schema", "structured output")

STRUCTURED_MODES = ("auto", "native", "prompt")

DEFAULT_TEMPERATURE = 0.7
DEFAULT_IMAGE_PROMPT = "Please analyze this image."
DEFAULT_APP_URL = "https://github.com/completion-gateway/completion-gateway"
DEFAULT_APP_TITLE = "completion-gateway"

SCHEMA_INSTRUCTION_TEMPLATE = (
    "Respond with ONLY valid JSON that matches this exact schema:\n"
    "{schema}\n\n"
    "IMPORTANT: Your response must be a raw JSON object with no additional "
    "text, explanations, or markdown formatting. Start your response with '{{' "
    "and end with '}}'. Do not wrap it in ```json or any other code fence."
)

PROVIDER_CATEGORY = "llm_provider"


def format_part(part: TextPart | ImagePart) -> dict[str, Any]:
    if isinstance(part, ImagePart):
        return {"type": "image_url", "image_url": {"url": part.image_url.url}}
    return {"type": "text", "text": part.text}


def format_message(message: Message) -> dict[str, Any]:
    """
    Map a canonical message onto the chat-completions wire shape.

    Only user messages may carry image parts; system and assistant messages
    keep their text parts.
    """
    role = message.role.value
    if isinstance(message.content, str):
        return {"role": role, "content": message.content}

    parts = [format_part(part) for part in message.content]
    if message.role is not Role.USER:
        parts = [part for part in parts if part["type"] == "text"]
    return {"role": role, "content": parts}


def format_image_message(image: ImageAttachment) -> dict[str, Any]:
    encoded = base64.b64encode(image.buffer).decode("ascii")
    return {
        "role": Role.USER.value,
        "content": [
            {"type": "text", "text": image.description or DEFAULT_IMAGE_PROMPT},
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{encoded}"},
            },
        ],
    }


def attachment_url(message: dict[str, Any]) -> str:
    return message["content"][1]["image_url"]["url"]


def embedded_image_urls(messages: list[dict[str, Any]]) -> set[str]:
    """Image URLs already carried by user messages in the conversation."""
    return {
        part["image_url"]["url"]
        for message in messages
        if message["role"] == Role.USER.value and isinstance(message["content"], list)
        for part in message["content"]
        if part["type"] == "image_url"
    }


def format_tool(tool: ToolSpec) -> dict[str, Any]:
    parameters: dict[str, Any] = {
        "type": "object",
        "properties": tool.parameters.get("properties", {}),
    }
    if "required" in tool.parameters:
        parameters["required"] = tool.parameters["required"]
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": parameters,
        },
    }


def schema_instruction(response_model: ResponseModel) -> dict[str, Any]:
    """User message asking for a bare JSON object matching the schema."""
    schema_text = json.dumps(response_model.json_schema())
    return {
        "role": Role.USER.value,
        "content": SCHEMA_INSTRUCTION_TEMPLATE.format(schema=schema_text),
    }


def strict_json_schema(schema: Any) -> Any:
    """
    Copy of `schema` accepted by strict json_schema decoding.

    Every object with declared properties is closed (additionalProperties
    false) and lists all of its properties as required.
    """
    if isinstance(schema, list):
        return [strict_json_schema(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    strict = {key: strict_json_schema(value) for key, value in schema.items()}
    if strict.get("type") == "object" and isinstance(strict.get("properties"), dict):
        strict["additionalProperties"] = False
        strict["required"] = list(strict["properties"])
    return strict


def native_response_format(response_model: ResponseModel, strict: bool) -> dict[str, Any]:
    schema = response_model.json_schema()
    return {
        "type": "json_schema",
        "json_schema": {
            "name": response_model.name,
            "schema": strict_json_schema(schema) if strict else schema,
            "strict": strict,
        },
    }


def rejects_native_format(exc: openai.APIStatusError) -> bool:
    """True when a 400/422 reply is about response_format itself."""
    text = str(exc).lower()
    return any(marker in text for marker in _NATIVE_REJECTION_MARKERS)


class OpenAIProvider(LLMProvider):
    """
    OpenAI Chat Completions adapter.

    Reads from env:
      LLM_API_KEY   -- API key (vendor-specific variables are also checked,
                       e.g. OPENROUTER_API_KEY, OPENAI_API_KEY)
      LLM_BASE_URL  -- override the vendor base URL
      LLM_MODEL     -- override the default model for the provider
      LLM_REQUEST_TIMEOUT -- seconds, default 120
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        provider_name: str = "openrouter",
        structured_output: str = "auto",
        strict_schema: bool = True,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        app_url: str = DEFAULT_APP_URL,
        app_title: str = DEFAULT_APP_TITLE,
    ) -> None:
        self.provider_name = provider_name

        if structured_output not in STRUCTURED_MODES:
            raise ConfigurationError(
                f"Unknown structured output mode '{structured_output}'. "
                f"Available: {', '.join(STRUCTURED_MODES)}"
            )
        if structured_output == "auto":
            self._native_structured = provider_name in _NATIVE_STRUCTURED_PROVIDERS
        else:
            self._native_structured = structured_output == "native"
        self._strict_schema = strict_schema

        vendor_env = _API_KEY_ENVS.get(provider_name, "")
        self._api_key = (
            api_key
            or os.environ.get("LLM_API_KEY", "")
            or (os.environ.get(vendor_env, "") if vendor_env else "")
        )
        # Local servers usually don't check the key, but the client requires one.
        if not self._api_key and provider_name == "local":
            self._api_key = "local-placeholder-key"
        elif not self._api_key:
            raise ConfigurationError(
                f"An API key is required for provider '{provider_name}'. "
                f"Set LLM_API_KEY{' (or ' + vendor_env + ')' if vendor_env else ''} "
                "in your environment."
            )

        self._base_url = (
            base_url
            or os.environ.get("LLM_BASE_URL", "")
            or _BASE_URLS.get(provider_name, _BASE_URLS["openrouter"])
        )

        self.model_name = (
            model
            or os.environ.get("LLM_MODEL", "")
            or _DEFAULT_MODELS.get(provider_name, _DEFAULT_MODELS["openrouter"])
        )

        if timeout is None:
            timeout = float(os.environ.get("LLM_REQUEST_TIMEOUT", "120"))

        # Retries are owned by the gateway; the SDK must not retry on its own.
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=self._base_url,
            timeout=timeout,
            max_retries=0,
            default_headers={"HTTP-Referer": app_url, "X-Title": app_title},
            http_client=http_client,
        )

    @property
    def supports_native_structured_output(self) -> bool:
        return self._native_structured

    def build_messages(self, request: CompletionRequest) -> list[dict[str, Any]]:
        messages = [format_message(m) for m in request.messages]
        if request.image is not None:
            image_message = format_image_message(request.image)
            if attachment_url(image_message) not in embedded_image_urls(messages):
                messages.append(image_message)
        return messages

    def build_params(self, request: CompletionRequest) -> dict[str, Any]:
        """Vendor call arguments, without any structured-output negotiation."""
        params: dict[str, Any] = {
            "model": request.model or self.model_name,
            "messages": self.build_messages(request),
            "temperature": (
                request.temperature
                if request.temperature is not None
                else DEFAULT_TEMPERATURE
            ),
        }
        optional = {
            "max_tokens": request.max_tokens,
            "top_p": request.top_p,
            "frequency_penalty": request.frequency_penalty,
            "presence_penalty": request.presence_penalty,
        }
        params.update({k: v for k, v in optional.items() if v is not None})

        if request.tools:
            params["tools"] = [format_tool(tool) for tool in request.tools]
            params["tool_choice"] = request.tool_choice or "auto"
        return params

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        params = self.build_params(request)
        response_model = request.response_model

        if response_model is not None and self._native_structured:
            native = dict(
                params,
                response_format=native_response_format(
                    response_model, self._strict_schema
                ),
            )
            try:
                return await self._create(native, request)
            except _StructuredOutputRejected as exc:
                logger.warning(
                    "Native structured output rejected by %s, using schema instructions: %s",
                    self.provider_name,
                    exc,
                    extra=log_fields(PROVIDER_CATEGORY, request.request_id),
                )

        if response_model is not None:
            logger.debug(
                "Using instruction-based approach for response model %s",
                response_model.name,
                extra=log_fields(PROVIDER_CATEGORY, request.request_id),
            )
            params["messages"] = params["messages"] + [
                schema_instruction(response_model)
            ]

        return await self._create(params, request)

    async def _create(
        self, params: dict[str, Any], request: CompletionRequest
    ) -> CompletionResponse:
        try:
            api_response = await self._client.chat.completions.create(**params)
        except (openai.BadRequestError, openai.UnprocessableEntityError) as exc:
            if "response_format" in params and rejects_native_format(exc):
                raise _StructuredOutputRejected(self._redact(str(exc))) from exc
            raise CompletionRequestError(
                f"{self.provider_name} request failed: {self._redact(str(exc))}",
                request_id=request.request_id,
            ) from exc
        except openai.APIError as exc:
            raise CompletionRequestError(
                f"{self.provider_name} request failed: {self._redact(str(exc))}",
                request_id=request.request_id,
            ) from exc

        response = self._to_canonical(api_response, params["model"], request)
        logger.debug(
            "%s chat completion finished",
            self.provider_name,
            extra=log_fields(
                PROVIDER_CATEGORY,
                request.request_id,
                finish_reason=response.choice.finish_reason,
                total_tokens=response.usage.total_tokens,
            ),
        )
        return response

    def _to_canonical(
        self, api_response: Any, model: str, request: CompletionRequest
    ) -> CompletionResponse:
        choices = getattr(api_response, "choices", None)
        if not choices:
            raise CompletionRequestError(
                f"{self.provider_name} returned a reply without choices",
                request_id=request.request_id,
            )

        first = choices[0]
        message = getattr(first, "message", None)
        if message is None:
            raise CompletionRequestError(
                f"{self.provider_name} returned a choice without a message",
                request_id=request.request_id,
            )

        try:
            tool_calls = [
                ToolCall(
                    id=call.id or "",
                    function=FunctionCall(
                        name=call.function.name,
                        arguments=call.function.arguments or "",
                    ),
                )
                for call in (message.tool_calls or [])
                if getattr(call, "function", None) is not None
            ]

            usage = api_response.usage
            return CompletionResponse(
                id=api_response.id or "",
                created=api_response.created or 0,
                model=model,
                choices=[
                    Choice(
                        index=0,
                        message=ResponseMessage(
                            content=message.content or None,
                            tool_calls=tool_calls,
                        ),
                        finish_reason=first.finish_reason or "stop",
                    )
                ],
                usage=Usage(
                    prompt_tokens=(usage.prompt_tokens or 0) if usage else 0,
                    completion_tokens=(usage.completion_tokens or 0) if usage else 0,
                    total_tokens=(usage.total_tokens or 0) if usage else 0,
                ),
            )
        except (AttributeError, ValidationError) as exc:
            raise CompletionRequestError(
                f"{self.provider_name} returned a malformed reply: {exc}",
                request_id=request.request_id,
            ) from exc

    def _redact(self, text: str) -> str:
        if self._api_key:
            return text.replace(self._api_key, "***")
        return text


class _StructuredOutputRejected(Exception):
    """Vendor refused the native response_format for this call."""
