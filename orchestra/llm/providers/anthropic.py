"""
Anthropic provider adapter.

This module streams the Anthropic Messages API over ``httpx`` server-sent
events, accumulating text deltas and ``tool_use`` blocks whose JSON input
arrives as ``input_json_delta`` fragments. Tool rounds are replayed as
assistant ``tool_use`` blocks followed by user ``tool_result`` blocks.
"""

import logging
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

logger = logging.getLogger(__name__)

ANTHROPIC_API_URL: str = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION: str = "2023-06-01"

ANTHROPIC_MODELS: list[tuple[str, str]] = [
    ("claude-opus-4-5-20251101", "Opus 4.5"),
    ("claude-sonnet-4-5-20250929", "Sonnet 4.5"),
    ("claude-haiku-4-5-20251001", "Haiku 4.5"),
    ("claude-sonnet-4-20250514", "Sonnet 4"),
]

STOP_REASONS: dict[str, StopReason] = {
    "end_turn": StopReason.END_TURN,
    "tool_use": StopReason.TOOL_USE,
    "max_tokens": StopReason.MAX_TOKENS,
    "stop_sequence": StopReason.STOP_SEQUENCE,
}


class AnthropicProvider(ToolCapableProvider):
    """
    Adapter for Anthropic Claude models.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        HTTP client to use; one is created on first use otherwise.
    """

    provider_type: str = "anthropic"
    display_name: str = "Anthropic"
    title_model: str | None = "claude-haiku-4-5-20251001"

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
            return error.status_code == 529 or "overloaded_error" in error.body
        if isinstance(error, ProviderError):
            return error.details.get("error_type") == "overloaded_error"
        return "overloaded" in str(error).lower()

    async def get_available_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(key=f"{self.provider_type}/{model_id}", name=name)
            for model_id, name in ANTHROPIC_MODELS
        ]

    async def _convert_messages(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> list[dict[str, Any]]:
        """
        Convert neutral messages into Anthropic messages.

        Images go before the text of a user message.
        """
        converted: list[dict[str, Any]] = []
        for message in self.provider_messages(messages):
            if message.role == MessageRole.USER and message.attachments:
                blocks: list[dict[str, Any]] = []
                for attachment in message.attachments:
                    data: str | None = await self.load_image(attachment.path, options)
                    if data is None:
                        continue
                    blocks.append(
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": attachment.mime_type,
                                "data": data,
                            },
                        }
                    )
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                converted.append({"role": "user", "content": blocks})
            else:
                converted.append({"role": message.role.value, "content": message.content})
        return converted

    @staticmethod
    def _convert_tool_history(tool_history: list[ToolRound]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for tool_round in tool_history:
            assistant_blocks: list[dict[str, Any]] = []
            if tool_round.text_content:
                assistant_blocks.append({"type": "text", "text": tool_round.text_content})
            for call in tool_round.tool_calls:
                assistant_blocks.append(
                    {
                        "type": "tool_use",
                        "id": call.id,
                        "name": call.name,
                        "input": call.input,
                    }
                )
            converted.append({"role": "assistant", "content": assistant_blocks})
            converted.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": result.tool_use_id,
                            "content": result.content,
                            "is_error": result.is_error,
                        }
                        for result in tool_round.tool_results
                    ],
                }
            )
        return converted

    def _build_payload(
        self,
        converted: list[dict[str, Any]],
        options: ChatOptions,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": options.model,
            "max_tokens": options.max_tokens,
            "messages": converted,
            "stream": True,
        }
        if options.system_prompt:
            payload["system"] = options.system_prompt
        if options.tools:
            payload["tools"] = [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "input_schema": tool.input_schema,
                }
                for tool in options.tools
            ]
        return payload

    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> ChatResult:
        api_key: str = self._require_initialized()
        converted = await self._convert_messages(messages, options)
        return await self._stream(api_key, self._build_payload(converted, options), options)

    async def send_message_with_tool_results(
        self,
        messages: list[Message],
        tool_history: list[ToolRound],
        options: ChatOptions,
    ) -> ChatResult:
        api_key: str = self._require_initialized()
        converted = await self._convert_messages(messages, options)
        converted.extend(self._convert_tool_history(tool_history))
        return await self._stream(api_key, self._build_payload(converted, options), options)

    async def _stream(self, api_key: str, payload: dict[str, Any], options: ChatOptions) -> ChatResult:
        headers: dict[str, str] = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        # An overload can surface as an HTTP status or as an ``error`` event
        # after a 200, so each attempt opens and drains a fresh stream.
        try:
            return await self._retry_strategy().execute(
                lambda: self._stream_once(headers, payload, options),
            )
        except (VendorHTTPError, httpx.HTTPError) as e:
            raise wrap_http_error(e, self.provider_type, self.display_name) from e

    async def _stream_once(
        self,
        headers: dict[str, str],
        payload: dict[str, Any],
        options: ChatOptions,
    ) -> ChatResult:
        response: httpx.Response = await open_stream(self._http(), ANTHROPIC_API_URL, payload, headers)

        content: str = ""
        stop_reason: StopReason = StopReason.END_TURN
        usage = TokenUsage()
        accumulator = ToolCallAccumulator(options.on_tool_use)

        try:
            async for event in iter_sse_events(response):
                if options.is_cancelled:
                    logger.debug("Anthropic stream cancelled")
                    return ChatResult(content=content, stop_reason=StopReason.END_TURN)

                event_type: str = event.get("type", "")
                if event_type == "message_start":
                    message = event.get("message", {})
                    usage = TokenUsage(
                        input_tokens=message.get("usage", {}).get("input_tokens", 0),
                        response_id=message.get("id"),
                    )
                elif event_type == "content_block_start":
                    block = event.get("content_block", {})
                    if block.get("type") == "tool_use":
                        accumulator.start(event.get("index", 0), block.get("id", ""), block.get("name", ""))
                elif event_type == "content_block_delta":
                    delta = event.get("delta", {})
                    if delta.get("type") == "text_delta":
                        text: str = delta.get("text", "")
                        content += text
                        if options.on_chunk and text:
                            options.on_chunk(text)
                    elif delta.get("type") == "input_json_delta":
                        accumulator.append_arguments(event.get("index", 0), delta.get("partial_json", ""))
                elif event_type == "message_delta":
                    reason = event.get("delta", {}).get("stop_reason")
                    if reason:
                        stop_reason = STOP_REASONS.get(reason, StopReason.END_TURN)
                    usage = usage + TokenUsage(
                        output_tokens=event.get("usage", {}).get("output_tokens", 0)
                    )
                elif event_type == "error":
                    error = event.get("error", {})
                    raise ProviderError(
                        f"Anthropic stream error: {error.get('message', error)}",
                        provider=self.provider_type,
                        details={"error_type": error.get("type")},
                    )
        finally:
            await response.aclose()

        tool_calls = accumulator.finish()
        if tool_calls:
            stop_reason = StopReason.TOOL_USE
        elif stop_reason == StopReason.TOOL_USE:
            stop_reason = StopReason.END_TURN

        return ChatResult(
            content=content,
            tool_use=accumulator.tool_uses,
            tool_calls=tool_calls,
            stop_reason=stop_reason,
            usage=usage,
        )
