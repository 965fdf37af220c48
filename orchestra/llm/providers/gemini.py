"""
Google Gemini provider adapter.

This module streams the Generative Language API
(``streamGenerateContent?alt=sse``) over ``httpx``. Gemini does not assign
ids to function calls, so the adapter synthesizes them, and it carries
thought signatures on each call so they can be echoed back when the round
is replayed.
"""

import logging
import time
from typing import Any

import httpx

from orchestra.exceptions import ProviderError
from orchestra.llm.models import (
    ChatOptions,
    ChatResult,
    Message,
    MessageRole,
    ModelInfo,
    StopReason,
    TokenUsage,
    ToolRound,
)
from orchestra.llm.providers.base import ToolCallAccumulator, ToolCapableProvider
from orchestra.llm.providers.http import (
    DEFAULT_TIMEOUT,
    VendorHTTPError,
    iter_sse_events,
    open_stream,
    wrap_http_error,
)
from orchestra.tools.models import ToolDefinition

logger = logging.getLogger(__name__)

GEMINI_API_URL: str = "https://generativelanguage.googleapis.com/v1beta"

GEMINI_MODELS: list[tuple[str, str]] = [
    ("gemini-3-pro-preview", "Gemini 3 Pro"),
    ("gemini-3-flash-preview", "Gemini 3 Flash"),
    ("gemini-2.5-pro", "Gemini 2.5 Pro"),
    ("gemini-2.5-flash", "Gemini 2.5 Flash"),
    ("gemini-2.0-flash-lite", "Gemini 2.0 Flash Lite"),
]

FINISH_REASONS: dict[str, StopReason] = {
    "STOP": StopReason.END_TURN,
    "MAX_TOKENS": StopReason.MAX_TOKENS,
}

SCHEMA_KEYS: frozenset[str] = frozenset(
    {"type", "description", "properties", "required", "items", "enum", "format", "nullable"}
)

OVERLOAD_STATUS_CODES: frozenset[int] = frozenset({429, 503})
OVERLOAD_STATUSES: frozenset[str] = frozenset({"RESOURCE_EXHAUSTED", "UNAVAILABLE"})


def to_gemini_schema(schema: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a JSON schema into Gemini's OpenAPI subset.

    Types are upper-cased and unsupported keywords dropped, recursively.

    Examples
    --------
    >>> to_gemini_schema({"type": "object", "title": "X", "properties": {"q": {"type": "string"}}})
    {'type': 'OBJECT', 'properties': {'q': {'type': 'STRING'}}}
    """
    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in SCHEMA_KEYS:
            continue
        if key == "type" and isinstance(value, str):
            converted[key] = value.upper()
        elif key == "properties" and isinstance(value, dict):
            converted[key] = {name: to_gemini_schema(prop) for name, prop in value.items()}
        elif key == "items" and isinstance(value, dict):
            converted[key] = to_gemini_schema(value)
        else:
            converted[key] = value
    return converted


class GeminiProvider(ToolCapableProvider):
    """
    Adapter for Google Gemini models.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        HTTP client to use; one is created on first use otherwise.
    """

    provider_type: str = "gemini"
    display_name: str = "Gemini"
    title_model: str | None = "gemini-2.5-flash-lite"

    def __init__(self, *args: Any, client: httpx.AsyncClient | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client: httpx.AsyncClient | None = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def is_overloaded(self, error: Exception) -> bool:
        if isinstance(error, VendorHTTPError):
            return error.status_code in OVERLOAD_STATUS_CODES
        if isinstance(error, ProviderError):
            return (
                error.status_code in OVERLOAD_STATUS_CODES
                or error.details.get("error_type") in OVERLOAD_STATUSES
            )
        return "overloaded" in str(error).lower()

    async def get_available_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(key=f"{self.provider_type}/{model_id}", name=name)
            for model_id, name in GEMINI_MODELS
        ]

    async def _convert_messages(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for message in self.provider_messages(messages):
            parts: list[dict[str, Any]] = []
            if message.role == MessageRole.USER:
                for attachment in message.attachments:
                    data: str | None = await self.load_image(attachment.path, options)
                    if data is not None:
                        parts.append({"inlineData": {"mimeType": attachment.mime_type, "data": data}})
            parts.append({"text": message.content})
            role: str = "model" if message.role == MessageRole.ASSISTANT else "user"
            contents.append({"role": role, "parts": parts})
        return contents

    @staticmethod
    def _convert_tool_history(tool_history: list[ToolRound]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for tool_round in tool_history:
            model_parts: list[dict[str, Any]] = []
            if tool_round.text_content:
                model_parts.append({"text": tool_round.text_content})
            for call in tool_round.tool_calls:
                part: dict[str, Any] = {"functionCall": {"name": call.name, "args": call.input}}
                signature = call.provider_data.get("thought_signature")
                if signature:
                    part["thoughtSignature"] = signature
                model_parts.append(part)
            contents.append({"role": "model", "parts": model_parts})

            response_parts: list[dict[str, Any]] = []
            for call in tool_round.tool_calls:
                result = tool_round.result_for(call.id)
                response_parts.append(
                    {
                        "functionResponse": {
                            "name": call.name,
                            "response": {"content": result.content if result else ""},
                        }
                    }
                )
            contents.append({"role": "user", "parts": response_parts})
        return contents

    @staticmethod
    def _build_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "functionDeclarations": [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": to_gemini_schema(tool.input_schema),
                    }
                    for tool in tools
                ]
            }
        ]

    def _build_payload(self, contents: list[dict[str, Any]], options: ChatOptions) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": options.max_tokens},
        }
        if options.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": options.system_prompt}]}
        if options.tools:
            payload["tools"] = self._build_tools(options.tools)
        return payload

    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> ChatResult:
        api_key: str = self._require_initialized()
        contents = await self._convert_messages(messages, options)
        return await self._stream(api_key, self._build_payload(contents, options), options)

    async def send_message_with_tool_results(
        self,
        messages: list[Message],
        tool_history: list[ToolRound],
        options: ChatOptions,
    ) -> ChatResult:
        api_key: str = self._require_initialized()
        contents = await self._convert_messages(messages, options)
        contents.extend(self._convert_tool_history(tool_history))
        return await self._stream(api_key, self._build_payload(contents, options), options)

    async def _stream(self, api_key: str, payload: dict[str, Any], options: ChatOptions) -> ChatResult:
        url: str = f"{GEMINI_API_URL}/models/{options.model}:streamGenerateContent?alt=sse"
        headers: dict[str, str] = {"x-goog-api-key": api_key}
        try:
            return await self._retry_strategy().execute(
                lambda: self._stream_once(url, headers, payload, options),
            )
        except (VendorHTTPError, httpx.HTTPError) as e:
            raise wrap_http_error(e, self.provider_type, self.display_name) from e

    async def _stream_once(
        self,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any],
        options: ChatOptions,
    ) -> ChatResult:
        response: httpx.Response = await open_stream(self._http(), url, payload, headers)

        content: str = ""
        stop_reason: StopReason = StopReason.END_TURN
        usage: TokenUsage | None = None
        accumulator = ToolCallAccumulator(options.on_tool_use)
        call_prefix: str = f"gemini-call-{int(time.time() * 1000)}"
        call_index: int = 0

        try:
            async for event in iter_sse_events(response):
                if options.is_cancelled:
                    logger.debug("Gemini stream cancelled")
                    return ChatResult(content=content, stop_reason=StopReason.END_TURN)

                if "error" in event:
                    error = event["error"] if isinstance(event["error"], dict) else {}
                    raise ProviderError(
                        f"Gemini stream error: {error.get('message', event['error'])}",
                        provider=self.provider_type,
                        status_code=error.get("code"),
                        details={"error_type": error.get("status")},
                    )

                metadata = event.get("usageMetadata")
                if metadata:
                    usage = TokenUsage(
                        input_tokens=metadata.get("promptTokenCount", 0),
                        output_tokens=metadata.get("candidatesTokenCount", 0),
                        response_id=event.get("responseId"),
                    )

                for candidate in event.get("candidates", [])[:1]:
                    finish_reason = candidate.get("finishReason")
                    if finish_reason:
                        stop_reason = FINISH_REASONS.get(finish_reason, StopReason.END_TURN)

                    for part in candidate.get("content", {}).get("parts", []):
                        if "functionCall" in part:
                            call = part["functionCall"]
                            provider_data: dict[str, Any] = {}
                            if part.get("thoughtSignature"):
                                provider_data["thought_signature"] = part["thoughtSignature"]
                            accumulator.start(
                                call_index,
                                f"{call_prefix}-{call_index}",
                                call.get("name", ""),
                                provider_data,
                            )
                            accumulator.set_arguments(call_index, call.get("args") or {})
                            call_index += 1
                        elif part.get("text") and not part.get("thought"):
                            text: str = part["text"]
                            content += text
                            if options.on_chunk:
                                options.on_chunk(text)
        finally:
            await response.aclose()

        tool_calls = accumulator.finish()
        if tool_calls:
            stop_reason = StopReason.TOOL_USE

        return ChatResult(
            content=content,
            tool_use=accumulator.tool_uses,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
        )
