"""
Context manager for fitting conversations into a token budget.

This module decides which messages are sent to a provider: it reserves room
for the system prompt, tool definitions and the response, trims verbose tool
results, always keeps the newest message (cutting its content if needed),
and fills the remaining budget with older messages, newest first.
"""

import logging

from orchestra.config.schema import ContextSettings
from orchestra.constants import DEFAULT_CHARS_PER_TOKEN, TRUNCATION_MARKER
from orchestra.context.estimator import (
    TRUNCATION_PREFIX,
    estimate_message_tokens,
    estimate_tokens,
    estimate_tool_tokens,
    truncate_to_token_budget,
)
from orchestra.context.models import ContextBudget, TruncatedContext
from orchestra.llm.models import Message, MessageRole, ToolUse
from orchestra.tools.models import ToolDefinition

logger = logging.getLogger(__name__)


class ContextManager:
    """
    Fits conversations into a token budget.

    Parameters
    ----------
    settings : ContextSettings | None, optional
        Budget settings. Defaults to a 16000-token budget with 4000 reserved
        for the response and a 500-token ceiling per tool result.

    Examples
    --------
    >>> manager = ContextManager()
    >>> budget = manager.calculate_budget("You are helpful.", [])
    >>> context = manager.prepare_context(messages, budget)
    >>> context.messages[-1] is messages[-1]
    True
    """

    def __init__(self, settings: ContextSettings | None = None) -> None:
        self.settings: ContextSettings = settings or ContextSettings()

    def calculate_budget(
        self,
        system_prompt: str,
        tools: list[ToolDefinition],
    ) -> ContextBudget:
        """
        Split the total budget between prompt, tools, response and messages.

        Parameters
        ----------
        system_prompt : str
            System prompt that will be sent.
        tools : list[ToolDefinition]
            Tool definitions that will be sent.

        Returns
        -------
        ContextBudget
            Budget whose ``messages`` share is clamped at zero.
        """
        system_tokens: int = estimate_tokens(system_prompt)
        tool_tokens: int = estimate_tool_tokens(tools)
        available: int = max(
            0,
            self.settings.total_budget
            - system_tokens
            - tool_tokens
            - self.settings.response_reserve,
        )
        return ContextBudget(
            total=self.settings.total_budget,
            system_prompt=system_tokens,
            tools=tool_tokens,
            response=self.settings.response_reserve,
            messages=available,
        )

    def prepare_context(
        self,
        messages: list[Message],
        budget: ContextBudget,
    ) -> TruncatedContext:
        """
        Select the messages that fit the budget.

        Log messages are dropped first. The newest message is always kept;
        if it alone exceeds the budget its content keeps only its tail so the
        estimate stays within budget whenever the message's fixed overhead
        (structure, attachments, tool results) fits. Older messages are added
        newest first until the first one that does not fit; it and everything
        older are dropped.

        Parameters
        ----------
        messages : list[Message]
            Conversation, oldest first.
        budget : ContextBudget
            Budget from :meth:`calculate_budget`.

        Returns
        -------
        TruncatedContext
            Kept messages oldest first, with truncation statistics.
        """
        filtered: list[Message] = [m for m in messages if m.role != MessageRole.LOG]
        if not filtered:
            return TruncatedContext()

        prepared: list[Message] = [self._truncate_tool_results(m) for m in filtered]

        newest: Message = prepared[-1]
        newest_tokens: int = estimate_message_tokens(newest)
        content_truncated: bool = False

        if newest_tokens > budget.messages:
            newest = self._truncate_newest(newest, newest_tokens, budget.messages)
            newest_tokens = estimate_message_tokens(newest)
            content_truncated = True

        kept: list[Message] = [newest]
        total_tokens: int = newest_tokens

        for message in reversed(prepared[:-1]):
            message_tokens: int = estimate_message_tokens(message)
            if total_tokens + message_tokens > budget.messages:
                break
            kept.append(message)
            total_tokens += message_tokens

        kept.reverse()
        truncated_count: int = len(prepared) - len(kept)

        if truncated_count or content_truncated:
            logger.debug(
                f"Context truncated: dropped {truncated_count} messages, "
                f"newest content truncated={content_truncated}, "
                f"{total_tokens}/{budget.messages} tokens"
            )

        return TruncatedContext(
            messages=kept,
            estimated_tokens=total_tokens,
            truncated=truncated_count > 0 or content_truncated,
            truncated_count=truncated_count,
            content_truncated=content_truncated,
        )

    @staticmethod
    def _truncate_newest(message: Message, message_tokens: int, available: int) -> Message:
        """Cut the newest message's content so the whole message fits ``available``."""
        overhead: int = message_tokens - estimate_tokens(message.content)
        content_budget: int = available - overhead - estimate_tokens(TRUNCATION_PREFIX)
        if content_budget <= 0:
            # fixed overhead alone fills the budget
            content: str = ""
        else:
            content = truncate_to_token_budget(message.content, content_budget)
        return message.model_copy(update={"content": content})

    def _truncate_tool_results(self, message: Message) -> Message:
        """
        Shorten tool results longer than the per-result ceiling.

        The head and tail of the result are kept around a truncation marker.
        """
        if not message.tool_use:
            return message

        max_chars: int = self.settings.tool_result_max_tokens * DEFAULT_CHARS_PER_TOKEN
        half_length: int = max_chars // 2 - 20
        changed: bool = False
        tool_uses: list[ToolUse] = []

        for tool in message.tool_use:
            if not tool.result or len(tool.result) <= max_chars:
                tool_uses.append(tool)
                continue
            shortened: str = (
                tool.result[:half_length]
                + f"\n\n{TRUNCATION_MARKER}\n\n"
                + tool.result[-half_length:]
            )
            tool_uses.append(tool.model_copy(update={"result": shortened}))
            changed = True

        if not changed:
            return message
        return message.model_copy(update={"tool_use": tool_uses})
