"""
Token estimation utilities.

Token counts are estimated from character length (about four characters per
token). The estimate is approximate but fast and vendor-independent.
"""

import json
import math

from orchestra.constants import (
    ATTACHMENT_TOKENS,
    CLEAN_BREAK_WINDOW,
    DEFAULT_CHARS_PER_TOKEN,
    MESSAGE_OVERHEAD_TOKENS,
    TOOL_USE_OVERHEAD_TOKENS,
    TRUNCATION_MARKER,
)
from orchestra.llm.models import Message
from orchestra.tools.models import ToolDefinition

TRUNCATION_PREFIX: str = TRUNCATION_MARKER + "\n\n"


def estimate_tokens(text: str) -> int:
    """
    Estimate the token count of a text.

    Parameters
    ----------
    text : str
        Text to estimate.

    Returns
    -------
    int
        ``ceil(len(text) / 4)``.

    Examples
    --------
    >>> estimate_tokens("abcde")
    2
    >>> estimate_tokens("")
    0
    """
    return math.ceil(len(text) / DEFAULT_CHARS_PER_TOKEN)


def estimate_message_tokens(message: Message) -> int:
    """
    Estimate the tokens a message costs, including structural overhead.

    Content, plus a fixed per-message overhead, plus a flat cost per
    attachment, plus each tool result and its metadata overhead.

    Parameters
    ----------
    message : Message
        Message to estimate.

    Returns
    -------
    int
        Estimated token count.
    """
    tokens: int = estimate_tokens(message.content) + MESSAGE_OVERHEAD_TOKENS
    tokens += len(message.attachments) * ATTACHMENT_TOKENS
    for tool in message.tool_use:
        tokens += estimate_tokens(tool.result or "") + TOOL_USE_OVERHEAD_TOKENS
    return tokens


def estimate_tool_tokens(tools: list[ToolDefinition]) -> int:
    """Estimate the tokens consumed by tool definitions."""
    return sum(
        estimate_tokens(tool.name + tool.description + json.dumps(tool.input_schema))
        for tool in tools
    )


def _clean_break(text: str) -> int:
    """Return the offset just past the first paragraph or sentence break near the start."""
    candidates: list[int] = []
    for separator in ("\n\n", ". "):
        index = text.find(separator, 0, CLEAN_BREAK_WINDOW)
        if index > 0:
            candidates.append(index + len(separator))
    return min(candidates) if candidates else 0


def truncate_to_token_budget(text: str, max_tokens: int) -> str:
    """
    Truncate text to a token budget, keeping the end.

    The most recent part of a text is usually the most relevant, so the tail
    is kept. When a paragraph or sentence break appears near the start of
    the kept tail, the partial leading fragment is dropped. A truncation
    marker is prepended; the result is estimated at no more than
    ``max_tokens + estimate_tokens(TRUNCATION_PREFIX)``.

    Parameters
    ----------
    text : str
        Text to truncate.
    max_tokens : int
        Token budget for the kept text.

    Returns
    -------
    str
        ``text`` unchanged if it fits, otherwise the marked tail.

    Examples
    --------
    >>> truncate_to_token_budget("short", 10)
    'short'
    """
    if estimate_tokens(text) <= max_tokens:
        return text
    if max_tokens <= 0:
        return TRUNCATION_PREFIX

    max_chars: int = max_tokens * DEFAULT_CHARS_PER_TOKEN
    tail: str = text[-max_chars:]
    offset: int = _clean_break(tail)
    if offset:
        tail = tail[offset:].lstrip("\n. ")
    return TRUNCATION_PREFIX + tail
