"""
OpenAI provider adapter.

This module implements the chat-completions streaming adapter on top of the
``openai`` SDK, including streamed tool-call accumulation and replay of
tool rounds as assistant ``tool_calls`` followed by ``tool`` messages.
"""

import json
import logging
from typing import Any

from openai import APIError, APIStatusError, AsyncOpenAI, RateLimitError

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
from orchestra.tools.models import ToolDefinition

logger = logging.getLogger(__name__)

OPENAI_MODELS: list[tuple[str, str]] = [
    ("gpt-5.2", "GPT-5.2"),
    ("gpt-5-mini", "GPT-5 Mini"),
    ("o3", "o3"),
    ("o4-mini", "o4 Mini"),
    ("gpt-4.1", "GPT-4.1"),
    ("gpt-4o", "GPT-4o"),
    ("gpt-4o-mini", "GPT-4o Mini"),
]

FINISH_REASONS: dict[str, StopReason] = {
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "stop": StopReason.END_TURN,
    "length": StopReason.MAX_TOKENS,
}

OVERLOAD_STATUS_CODES: frozenset[int] = frozenset({503, 529})


def map_finish_reason(finish_reason: str | None, has_tool_calls: bool) -> StopReason:
    """
    Normalize an OpenAI-style finish reason.

    Parameters
    ----------
    finish_reason : str | None
        Vendor finish reason.
    has_tool_calls : bool
        Whether any complete tool call was parsed.

    Returns
    -------
    StopReason
        Normalized stop reason; ``tool_use`` whenever tools should run.

    Examples
    --------
    >>> map_finish_reason("length", False)
    <StopReason.MAX_TOKENS: 'max_tokens'>
    """
    if has_tool_calls:
        return StopReason.TOOL_USE
    reason: StopReason = FINISH_REASONS.get(finish_reason or "stop", StopReason.END_TURN)
    if reason == StopReason.TOOL_USE:
        # tool_calls finish with nothing parseable left to run
        return StopReason.END_TURN
    return reason


class OpenAIProvider(ToolCapableProvider):
    """
    Adapter for OpenAI chat completions.

    Examples
    --------
    >>> provider = OpenAIProvider()
    >>> provider.initialize("sk-...")
    >>> result = await provider.send_message(messages, ChatOptions(model="gpt-4o"))
    """

    provider_type: str = "openai"
    display_name: str = "OpenAI"
    title_model: str | None = "gpt-4o-mini"
    base_url: str | None = None
    models: list[tuple[str, str]] = OPENAI_MODELS

    def __init__(self, *args: Any, client: AsyncOpenAI | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client: AsyncOpenAI | None = client
        if client is not None:
            self._credential = client.api_key

    def _on_initialize(self, credential: str) -> None:
        self._client = AsyncOpenAI(api_key=credential, base_url=self.base_url)

    async def close(self) -> None:
        if self._client:
            await self._client.close()
            self._client = None
            self._credential = None
            logger.debug(f"{self.display_name} client closed")

    def is_overloaded(self, error: Exception) -> bool:
        if isinstance(error, RateLimitError):
            return True
        if isinstance(error, APIStatusError) and error.status_code in OVERLOAD_STATUS_CODES:
            return True
        return "overloaded" in str(error).lower()

    async def get_available_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(key=f"{self.provider_type}/{model_id}", name=name)
            for model_id, name in self.models
        ]

    @staticmethod
    def _build_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Build tool definitions in OpenAI function format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_schema,
                },
            }
            for tool in tools
        ]

    async def _convert_messages(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> list[dict[str, Any]]:
        """
        Convert neutral messages into chat-completions messages.

        Image attachments are sent as data URLs on user messages only.
        """
        converted: list[dict[str, Any]] = []
        if options.system_prompt:
            converted.append({"role": "system", "content": options.system_prompt})

        for message in self.provider_messages(messages):
            if message.role == MessageRole.USER and message.attachments:
                parts: list[dict[str, Any]] = []
                for attachment in message.attachments:
                    data: str | None = await self.load_image(attachment.path, options)
                    if data is None:
                        continue
                    parts.append(
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{attachment.mime_type};base64,{data}"},
                        }
                    )
                parts.append({"type": "text", "text": message.content})
                converted.append({"role": "user", "content": parts})
            else:
                converted.append({"role": message.role.value, "content": message.content})

        return converted

    @staticmethod
    def _convert_tool_history(tool_history: list[ToolRound]) -> list[dict[str, Any]]:
        converted: list[dict[str, Any]] = []
        for tool_round in tool_history:
            converted.append(
                {
                    "role": "assistant",
                    "content": tool_round.text_content or None,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.name,
                                "arguments": json.dumps(call.input),
                            },
                        }
                        for call in tool_round.tool_calls
                    ],
                }
            )
            for result in tool_round.tool_results:
                converted.append(
                    {
                        "role": "tool",
                        "tool_call_id": result.tool_use_id,
                        "content": result.content,
                    }
                )
        return converted

    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> ChatResult:
        client: AsyncOpenAI = self._get_client(self._require_initialized())
        payload: list[dict[str, Any]] = await self._convert_messages(messages, options)
        return await self._stream(client, payload, options)

    async def send_message_with_tool_results(
        self,
        messages: list[Message],
        tool_history: list[ToolRound],
        options: ChatOptions,
    ) -> ChatResult:
        client: AsyncOpenAI = self._get_client(self._require_initialized())
        payload: list[dict[str, Any]] = await self._convert_messages(messages, options)
        payload.extend(self._convert_tool_history(tool_history))
        return await self._stream(client, payload, options)

    def _get_client(self, api_key: str) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=api_key, base_url=self.base_url)
        return self._client

    async def _stream(
        self,
        client: AsyncOpenAI,
        payload: list[dict[str, Any]],
        options: ChatOptions,
    ) -> ChatResult:
        """
        Run a streaming completion and accumulate the response.

        Opening and draining the stream form one retried attempt, since an
        overload can also arrive as an error chunk mid-stream.

        Parameters
        ----------
        client : AsyncOpenAI
            Client to call.
        payload : list[dict[str, Any]]
            Vendor-format messages.
        options : ChatOptions
            Call options.

        Returns
        -------
        ChatResult
            Accumulated response. On cancellation, the partial text with
            ``end_turn`` and no tool calls.
        """
        kwargs: dict[str, Any] = {
            "model": options.model,
            "messages": payload,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if options.tools:
            kwargs["tools"] = self._build_tools(options.tools)

        try:
            return await self._retry_strategy().execute(
                lambda: self._stream_once(client, kwargs, options),
            )
        except APIError as e:
            raise ProviderError(
                f"{self.display_name} API error: {e}",
                provider=self.provider_type,
                status_code=getattr(e, "status_code", None),
                cause=e,
            ) from e

    async def _stream_once(
        self,
        client: AsyncOpenAI,
        kwargs: dict[str, Any],
        options: ChatOptions,
    ) -> ChatResult:
        stream = await client.chat.completions.create(**kwargs)

        content: str = ""
        finish_reason: str | None = None
        usage: TokenUsage | None = None
        accumulator = ToolCallAccumulator(options.on_tool_use)

        async for chunk in stream:
            if options.is_cancelled:
                await stream.close()
                logger.debug(f"{self.display_name} stream cancelled")
                return ChatResult(content=content, stop_reason=StopReason.END_TURN)

            if getattr(chunk, "usage", None):
                usage = TokenUsage(
                    input_tokens=chunk.usage.prompt_tokens or 0,
                    output_tokens=chunk.usage.completion_tokens or 0,
                    response_id=chunk.id,
                )

            if not chunk.choices:
                continue

            choice = chunk.choices[0]
            delta = choice.delta

            if choice.finish_reason:
                finish_reason = choice.finish_reason

            if delta.content:
                content += delta.content
                if options.on_chunk:
                    options.on_chunk(delta.content)

            for tool_call_delta in delta.tool_calls or []:
                function = tool_call_delta.function
                accumulator.start(
                    tool_call_delta.index,
                    tool_call_delta.id or "",
                    (function.name if function else None) or "",
                )
                if function and function.arguments:
                    accumulator.append_arguments(tool_call_delta.index, function.arguments)

        tool_calls = accumulator.finish()
        return ChatResult(
            content=content,
            tool_use=accumulator.tool_uses,
            tool_calls=tool_calls,
            stop_reason=map_finish_reason(finish_reason, bool(tool_calls)),
            usage=usage,
        )
