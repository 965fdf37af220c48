"""
Base classes for provider adapters.

This module defines the contract every vendor adapter implements, the
tool-capable subclass used for multi-turn tool replay, and the streaming
tool-call accumulator shared by the adapters.
"""

import abc
import base64
import json
import logging
from typing import Any

from orchestra.config.schema import RetrySettings
from orchestra.constants import (
    TITLE_FALLBACK_LENGTH,
    TITLE_INPUT_CHARS,
    TITLE_MAX_LENGTH,
    TITLE_PROMPT,
)
from orchestra.exceptions import ProviderNotInitializedError
from orchestra.llm.models import (
    ChatOptions,
    ChatResult,
    Message,
    MessageRole,
    ModelInfo,
    ToolRound,
    ToolUse,
    ToolUseCallback,
)
from orchestra.llm.retry import RetryStrategy, SleepFunction
from orchestra.tools.models import ToolCall

logger = logging.getLogger(__name__)


def build_title_prompt(user_message: str, assistant_response: str) -> str:
    """
    Build the prompt asking a model to title a conversation.

    Parameters
    ----------
    user_message : str
        First user message.
    assistant_response : str
        First assistant response.

    Returns
    -------
    str
        The title prompt with both sides truncated.
    """
    return "\n".join(
        [
            TITLE_PROMPT,
            "",
            "User: " + user_message[:TITLE_INPUT_CHARS],
            "",
            "Assistant: " + assistant_response[:TITLE_INPUT_CHARS],
        ]
    )


class ToolCallAccumulator:
    """
    Accumulates streamed tool-call fragments keyed by stream index.

    Vendors stream a call's id and name once and its JSON arguments in
    pieces. Arguments are parsed when the stream ends; a call whose
    arguments are not valid JSON is logged and dropped.

    Parameters
    ----------
    on_tool_use : ToolUseCallback | None, optional
        Called once when a call first appears in the stream.

    Examples
    --------
    >>> acc = ToolCallAccumulator()
    >>> acc.start(0, "call_1", "http_get")
    >>> acc.append_arguments(0, '{"url": ')
    >>> acc.append_arguments(0, '"https://example.com"}')
    >>> acc.finish()[0].input
    {'url': 'https://example.com'}
    """

    def __init__(self, on_tool_use: ToolUseCallback | None = None) -> None:
        self._on_tool_use: ToolUseCallback | None = on_tool_use
        self._calls: dict[int, dict[str, Any]] = {}
        self.tool_uses: list[ToolUse] = []

    def __bool__(self) -> bool:
        return bool(self._calls)

    def start(
        self,
        index: int,
        call_id: str,
        name: str,
        provider_data: dict[str, Any] | None = None,
    ) -> None:
        """
        Register a new call, or fill in missing id/name for a known one.

        Parameters
        ----------
        index : int
            Stream index of the call.
        call_id : str
            Vendor call id (may be empty until a later fragment).
        name : str
            Tool name (may be empty until a later fragment).
        provider_data : dict[str, Any] | None, optional
            Vendor fields to echo back on replay.
        """
        entry = self._calls.get(index)
        if entry is None:
            entry = {"id": "", "name": "", "arguments": "", "provider_data": {}}
            self._calls[index] = entry
        if call_id and not entry["id"]:
            entry["id"] = call_id
        if provider_data:
            entry["provider_data"].update(provider_data)
        if name and not entry["name"]:
            entry["name"] = name
            tool_use = ToolUse(name=name)
            self.tool_uses.append(tool_use)
            if self._on_tool_use:
                self._on_tool_use(tool_use)

    def append_arguments(self, index: int, fragment: str) -> None:
        """Append a JSON argument fragment to the call at ``index``."""
        if index not in self._calls:
            self.start(index, "", "")
        self._calls[index]["arguments"] += fragment

    def set_arguments(self, index: int, arguments: dict[str, Any]) -> None:
        """Set already-parsed arguments for vendors that send them whole."""
        if index not in self._calls:
            self.start(index, "", "")
        self._calls[index]["arguments"] = json.dumps(arguments)

    def finish(self) -> list[ToolCall]:
        """
        Parse accumulated arguments into tool calls.

        Returns
        -------
        list[ToolCall]
            Calls in stream order; calls with unparseable arguments or no
            name are omitted. A call the vendor never gave an id gets
            ``call-<index>``.
        """
        calls: list[ToolCall] = []
        for index in sorted(self._calls):
            entry = self._calls[index]
            if not entry["name"]:
                logger.warning(f"Dropping tool call at index {index} with no name")
                continue
            raw: str = entry["arguments"].strip()
            try:
                arguments = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                logger.warning(
                    f"Dropping tool call {entry['name']}: invalid arguments JSON ({e})"
                )
                continue
            if not isinstance(arguments, dict):
                logger.warning(
                    f"Dropping tool call {entry['name']}: arguments are not an object"
                )
                continue
            calls.append(
                ToolCall(
                    id=entry["id"] or f"call-{index}",
                    name=entry["name"],
                    input=arguments,
                    provider_data=entry["provider_data"],
                )
            )
        return calls


class ProviderAdapter(abc.ABC):
    """
    Abstract base class for LLM provider adapters.

    An adapter normalizes one vendor's chat API into the neutral message and
    result model: it converts messages, streams text and tool calls, honours
    cooperative cancellation, retries overload errors and normalizes stop
    reasons.

    Parameters
    ----------
    retry_settings : RetrySettings | None, optional
        Overload retry settings.
    sleep : SleepFunction | None, optional
        Awaitable sleep used between retries.

    Attributes
    ----------
    provider_type : str
        Provider prefix used in model keys.
    display_name : str
        Vendor name used in user-facing messages.
    supports_tool_rounds : bool
        Whether the adapter can replay tool rounds.
    title_model : str | None
        Small model used for title generation.
    """

    provider_type: str = "base"
    display_name: str = "Base"
    supports_tool_rounds: bool = False
    title_model: str | None = None

    def __init__(
        self,
        retry_settings: RetrySettings | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        self.retry_settings: RetrySettings = retry_settings or RetrySettings()
        self._sleep: SleepFunction | None = sleep
        self._credential: str | None = None

    def initialize(self, credential: str) -> None:
        """
        Initialize the adapter with an API key or endpoint.

        Parameters
        ----------
        credential : str
            API key, or base URL for local providers.
        """
        self._credential = credential
        self._on_initialize(credential)
        logger.debug(f"{self.display_name} provider initialized")

    def _on_initialize(self, credential: str) -> None:
        """Hook for adapters that build a client on initialization."""

    def is_initialized(self) -> bool:
        """Whether the adapter has a credential."""
        return self._credential is not None

    def _require_initialized(self) -> str:
        """Return the credential, or raise if the adapter was never initialized."""
        if self._credential is None:
            raise ProviderNotInitializedError(self.provider_type)
        return self._credential

    def is_overloaded(self, error: Exception) -> bool:
        """
        Classify an exception as a transient overload signal.

        Parameters
        ----------
        error : Exception
            Exception raised by a vendor call.

        Returns
        -------
        bool
            True when the call should be retried.
        """
        return False

    def _retry_strategy(self) -> RetryStrategy:
        return RetryStrategy(
            self.display_name,
            self.is_overloaded,
            max_attempts=self.retry_settings.max_attempts,
            base_delay=self.retry_settings.base_delay,
            provider=self.provider_type,
            sleep=self._sleep,
        )

    @staticmethod
    def provider_messages(messages: list[Message]) -> list[Message]:
        """Return the messages that are sent to a vendor (log entries removed)."""
        return [m for m in messages if m.role != MessageRole.LOG]

    @staticmethod
    async def load_image(message_path: str, options: ChatOptions) -> str | None:
        """
        Load an attachment through the image loader as base64 text.

        Returns None when no loader is configured or loading fails.
        """
        if options.image_loader is None:
            return None
        try:
            data: bytes = await options.image_loader(message_path)
        except Exception as e:
            logger.warning(f"Failed to load image {message_path}: {e}")
            return None
        return base64.b64encode(data).decode("ascii")

    @abc.abstractmethod
    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> ChatResult:
        """
        Send a conversation and stream the response.

        Parameters
        ----------
        messages : list[Message]
            Conversation, oldest first. Log messages are ignored.
        options : ChatOptions
            Model, system prompt, tools, callbacks and cancellation.

        Returns
        -------
        ChatResult
            Accumulated content, tool calls and normalized stop reason.

        Raises
        ------
        ProviderNotInitializedError
            If the adapter has no credential.
        ProviderOverloadedError
            If the vendor stayed overloaded through every retry.
        ProviderError
            For permanent vendor failures.
        """

    @abc.abstractmethod
    async def get_available_models(self) -> list[ModelInfo]:
        """Return the models this provider offers."""

    async def generate_title(self, user_message: str, assistant_response: str) -> str:
        """
        Generate a short conversation title.

        Falls back to the first 50 characters of the user message when the
        adapter is uninitialized or the request fails.

        Parameters
        ----------
        user_message : str
            First user message.
        assistant_response : str
            First assistant response.

        Returns
        -------
        str
            Title of at most 100 characters.
        """
        fallback: str = user_message[:TITLE_FALLBACK_LENGTH]
        if not self.is_initialized() or not self.title_model:
            return fallback

        prompt: str = build_title_prompt(user_message, assistant_response)
        try:
            result: ChatResult = await self.send_message(
                [Message(role=MessageRole.USER, content=prompt)],
                ChatOptions(model=self.title_model, max_tokens=50),
            )
        except Exception as e:
            logger.error(f"Failed to generate title: {e}")
            return fallback

        title: str = result.content.strip()
        return title[:TITLE_MAX_LENGTH] if title else fallback

    async def close(self) -> None:
        """Release network resources held by the adapter."""


class ToolCapableProvider(ProviderAdapter):
    """
    Provider adapter that can replay tool rounds.

    The tool executor checks for this type before attempting multi-turn
    tool execution; text-only adapters do not subclass it.
    """

    supports_tool_rounds: bool = True

    @abc.abstractmethod
    async def send_message_with_tool_results(
        self,
        messages: list[Message],
        tool_history: list[ToolRound],
        options: ChatOptions,
    ) -> ChatResult:
        """
        Continue a conversation after one or more tool rounds.

        Parameters
        ----------
        messages : list[Message]
            Conversation, oldest first.
        tool_history : list[ToolRound]
            Every round so far, replayed after the messages in order.
        options : ChatOptions
            Model, system prompt, tools, callbacks and cancellation.

        Returns
        -------
        ChatResult
            The next response.
        """
