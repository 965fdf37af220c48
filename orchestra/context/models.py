"""
Data models for context management.

This module defines the token budget split for a request and the result of
fitting a conversation into that budget.
"""

from pydantic import BaseModel, Field

from orchestra.llm.models import Message


class ContextBudget(BaseModel):
    """
    Token budget for one provider request.

    Parameters
    ----------
    total : int
        Total token budget.
    system_prompt : int
        Tokens used by the system prompt.
    tools : int
        Tokens used by tool definitions.
    response : int
        Tokens reserved for the model's response.
    messages : int
        Tokens available for conversation messages, never negative.

    Examples
    --------
    >>> budget = ContextBudget(total=16000, system_prompt=2000, tools=0, response=4000, messages=10000)
    """

    total: int = Field(ge=0)
    system_prompt: int = Field(ge=0)
    tools: int = Field(ge=0)
    response: int = Field(ge=0)
    messages: int = Field(ge=0)


class TruncatedContext(BaseModel):
    """
    Messages fitted into a budget.

    Parameters
    ----------
    messages : list[Message]
        Kept messages, oldest first.
    estimated_tokens : int
        Estimated tokens of the kept messages.
    truncated : bool
        Whether anything was dropped or cut.
    truncated_count : int
        Number of older messages dropped.
    content_truncated : bool
        Whether the newest message's content was cut.
    """

    messages: list[Message] = Field(default_factory=list)
    estimated_tokens: int = 0
    truncated: bool = False
    truncated_count: int = 0
    content_truncated: bool = False
