"""
Data models for LLM interactions.

This module defines the vendor-neutral conversation model shared by every
provider adapter: messages, attachments, the UI records of tool and skill
usage, token usage, chat options and results, and tool rounds replayed in
multi-turn tool execution.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field, model_validator

from orchestra.constants import DEFAULT_MAX_OUTPUT_TOKENS
from orchestra.exceptions import ValidationError
from orchestra.tools.models import ToolCall, ToolDefinition, ToolResult


class MessageRole(str, Enum):
    """Roles a conversation message can have."""

    USER = "user"
    ASSISTANT = "assistant"
    LOG = "log"


class StopReason(str, Enum):
    """Normalized reasons a provider stopped generating."""

    END_TURN = "end_turn"
    TOOL_USE = "tool_use"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"


class Attachment(BaseModel):
    """
    An image attached to a user message.

    Bytes are fetched on demand through an image loader; the model only
    carries the reference.

    Parameters
    ----------
    path : str
        Location understood by the image loader.
    mime_type : str
        MIME type such as ``image/png``.
    """

    type: str = Field(default="image", description="Attachment type")
    path: str = Field(description="Image location")
    mime_type: str = Field(default="image/png", description="MIME type")


class ToolUse(BaseModel):
    """
    UI record of a single tool invocation.

    Parameters
    ----------
    name : str
        Tool name.
    input : dict[str, Any] | None, optional
        Arguments the model passed.
    result : str | None, optional
        Preview of the tool output.
    is_error : bool, default=False
        Whether the tool failed.
    """

    name: str
    input: dict[str, Any] | None = None
    result: str | None = None
    is_error: bool = False


class SkillUse(BaseModel):
    """UI record of a skill invoked through ``use_skill``."""

    name: str
    description: str | None = None


class Message(BaseModel):
    """
    A conversation message.

    Messages with role ``log`` are UI-only and never sent to a provider.

    Parameters
    ----------
    role : MessageRole
        Message author.
    content : str
        Message text.
    timestamp : datetime, optional
        Creation time. Defaults to now.
    model : str | None, optional
        Model key (``provider/model-id``) that produced an assistant message.
    attachments : list[Attachment], default=[]
        Image attachments.
    tool_use : list[ToolUse], default=[]
        Tools used while producing this message.
    skill_use : list[SkillUse], default=[]
        Skills used while producing this message.
    council_member : bool, default=False
        Whether the message is a council member response.
    chairman : bool, default=False
        Whether the message is a council chairman synthesis.

    Examples
    --------
    >>> Message(role="user", content="Hello")
    """

    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)
    model: str | None = None
    attachments: list[Attachment] = Field(default_factory=list)
    tool_use: list[ToolUse] = Field(default_factory=list)
    skill_use: list[SkillUse] = Field(default_factory=list)
    council_member: bool = False
    chairman: bool = False

    @property
    def is_log(self) -> bool:
        """Whether this message is a UI-only log entry."""
        return self.role == MessageRole.LOG


class TokenUsage(BaseModel):
    """
    Token usage statistics for one or more requests.

    Examples
    --------
    >>> total = TokenUsage(input_tokens=10) + TokenUsage(output_tokens=5)
    >>> total.output_tokens
    5
    """

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    response_id: str | None = None

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            response_id=other.response_id or self.response_id,
        )


class ModelInfo(BaseModel):
    """
    A model offered by a provider.

    Parameters
    ----------
    key : str
        Model key in ``provider/model-id`` form.
    name : str
        Human-readable display name.
    """

    key: str
    name: str

    @property
    def model_id(self) -> str:
        """The vendor model id without the provider prefix."""
        return self.key.split("/", 1)[1]


class ChatResult(BaseModel):
    """
    Result of one provider call.

    Parameters
    ----------
    content : str
        Accumulated text.
    tool_use : list[ToolUse], default=[]
        UI records of tool calls announced in the stream.
    tool_calls : list[ToolCall], default=[]
        Tool calls the model requested.
    stop_reason : StopReason
        Normalized stop reason.
    usage : TokenUsage | None, optional
        Token usage, when the vendor reports it.
    """

    content: str = ""
    tool_use: list[ToolUse] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.END_TURN
    usage: TokenUsage | None = None


class ToolRound(BaseModel):
    """
    One round of tool calls and their results, replayed to the model.

    Every call id must have exactly one result.

    Parameters
    ----------
    text_content : str | None, optional
        Text the model produced before requesting tools.
    tool_calls : list[ToolCall]
        Calls the model requested.
    tool_results : list[ToolResult]
        Results in call order.
    """

    text_content: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_results: list[ToolResult] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_pairing(self) -> ToolRound:
        """
        Validate that every call has exactly one result.

        Raises
        ------
        ValidationError
            If a call has no result, several results, or a result has no call.
        """
        call_ids: list[str] = [call.id for call in self.tool_calls]
        result_ids: list[str] = [result.tool_use_id for result in self.tool_results]
        if sorted(call_ids) != sorted(result_ids) or len(set(call_ids)) != len(call_ids):
            raise ValidationError(
                "Every tool call in a round must have exactly one result",
                field="tool_results",
                details={"calls": call_ids, "results": result_ids},
            )
        return self

    def result_for(self, call_id: str) -> ToolResult | None:
        """Return the result for a call id, if present."""
        for result in self.tool_results:
            if result.tool_use_id == call_id:
                return result
        return None


class CancellationToken:
    """
    Cooperative cancellation flag.

    Adapters poll ``is_cancelled`` between stream reads and stop early,
    returning whatever they accumulated.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancel()
    >>> token.is_cancelled
    True
    """

    def __init__(self) -> None:
        self._cancelled: bool = False

    def cancel(self) -> None:
        """Signal cancellation."""
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        """Whether cancellation was signalled."""
        return self._cancelled


ChunkCallback = Callable[[str], None]
ToolUseCallback = Callable[[ToolUse], None]
ImageLoader = Callable[[str], Awaitable[bytes]]


@dataclass
class ChatOptions:
    """
    Options for a single provider call.

    Parameters
    ----------
    model : str
        Vendor model id (without provider prefix).
    system_prompt : str | None, optional
        System prompt.
    tools : list[ToolDefinition] | None, optional
        Tools offered to the model.
    on_chunk : ChunkCallback | None, optional
        Called with each text delta.
    on_tool_use : ToolUseCallback | None, optional
        Called when a tool call first appears in the stream.
    cancellation : CancellationToken | None, optional
        Cooperative cancellation token.
    image_loader : ImageLoader | None, optional
        Loads attachment bytes.
    max_tokens : int, default=8192
        Output token ceiling for vendors that require one.
    """

    model: str
    system_prompt: str | None = None
    tools: list[ToolDefinition] | None = None
    on_chunk: ChunkCallback | None = None
    on_tool_use: ToolUseCallback | None = None
    cancellation: CancellationToken | None = None
    image_loader: ImageLoader | None = None
    max_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS

    @property
    def is_cancelled(self) -> bool:
        """Whether the attached cancellation token was signalled."""
        return self.cancellation is not None and self.cancellation.is_cancelled
