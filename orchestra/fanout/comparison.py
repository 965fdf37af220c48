"""
Side-by-side comparison of several models.
"""

import logging

from orchestra.fanout.base import FanOutOrchestrator
from orchestra.fanout.models import ComparisonResponse
from orchestra.llm.models import Message, MessageRole, ModelInfo

logger = logging.getLogger(__name__)


class ComparisonOrchestrator(FanOutOrchestrator):
    """
    Sends the same message to several models concurrently.

    Examples
    --------
    >>> orchestrator = ComparisonOrchestrator(providers, tool_executor)
    >>> responses = await orchestrator.start_streaming("Hello", models)
    >>> [r.status for r in responses]
    """

    async def start_streaming(
        self,
        user_message: str,
        models: list[ModelInfo],
        existing_messages: list[Message] | None = None,
    ) -> list[ComparisonResponse]:
        """
        Stream a user message to every model.

        Parameters
        ----------
        user_message : str
            New user message.
        models : list[ModelInfo]
            Models to compare.
        existing_messages : list[Message] | None, optional
            Conversation so far.

        Returns
        -------
        list[ComparisonResponse]
            One response per model, in model order. Cancelled models are
            ``complete`` with empty content; failed models are ``error``.
        """
        messages: list[Message] = [
            *(existing_messages or []),
            Message(role=MessageRole.USER, content=user_message),
        ]

        self._reset([model.key for model in models])
        self._streaming = True
        logger.info(f"Comparing {len(models)} models")
        try:
            return await self._fan_out(models, messages)
        finally:
            self._streaming = False
