"""
Council deliberation: several members answer, a chairman synthesizes.

Phase one fans the question out to every member. Once all members have
settled, phase two sends the question and each completed answer to the
chairman model, whose response is the final answer.
"""

import logging

from orchestra.constants import CHAIRMAN_KEY
from orchestra.fanout.base import FanOutOrchestrator
from orchestra.fanout.models import (
    ComparisonResponse,
    CouncilPhase,
    CouncilResult,
    ResponseStatus,
)
from orchestra.llm.models import Message, MessageRole, ModelInfo

logger = logging.getLogger(__name__)

CHAIRMAN_SYSTEM_PROMPT: str = """You are the chairman of a council of AI assistants. Your role is to synthesize the responses from multiple council members into a single, comprehensive, well-reasoned answer.

When synthesizing responses, you should:
1. Identify points of agreement among the council members
2. Address any contradictions or disagreements thoughtfully
3. Highlight the strongest insights from each response
4. Provide a clear, unified answer to the user's original question

Do not mention that you are a "chairman" or reference the council structure in your response. Simply provide the best synthesized answer as if you were directly responding to the user."""


def build_chairman_prompt(user_message: str, responses: list[ComparisonResponse]) -> str:
    """
    Build the chairman's user message.

    Only completed, non-empty member responses are included.

    Parameters
    ----------
    user_message : str
        The user's question.
    responses : list[ComparisonResponse]
        Member responses.

    Returns
    -------
    str
        Prompt containing the question and labelled answers.
    """
    answers: str = "\n\n".join(
        f"=== Response from {response.label} ===\n{response.content}"
        for response in responses
        if response.status == ResponseStatus.COMPLETE and response.content
    )
    return (
        f"USER'S ORIGINAL QUESTION:\n{user_message}\n\n"
        f"COUNCIL MEMBER RESPONSES:\n\n{answers}\n\n"
        "Please synthesize these responses into a comprehensive final answer."
    )


class CouncilOrchestrator(FanOutOrchestrator):
    """
    Runs a two-phase council.

    The chairman's state is tracked under the ``"chairman"`` key in
    ``statuses``, ``contents`` and ``errors``, and its text is streamed to
    the listener under that key.

    Attributes
    ----------
    phase : CouncilPhase
        Current phase.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.phase: CouncilPhase = CouncilPhase.IDLE

    async def start_council(
        self,
        user_message: str,
        members: list[ModelInfo],
        chairman: ModelInfo,
        existing_messages: list[Message] | None = None,
    ) -> CouncilResult:
        """
        Ask every member, then have the chairman synthesize.

        Parameters
        ----------
        user_message : str
            New user message.
        members : list[ModelInfo]
            Council members.
        chairman : ModelInfo
            Model that writes the synthesis.
        existing_messages : list[Message] | None, optional
            Conversation so far, given to the members.

        Returns
        -------
        CouncilResult
            Member responses and the chairman response. When stopped during
            the member phase, the synthesis is skipped and the chairman
            response is ``complete`` with empty content.
        """
        messages: list[Message] = [
            *(existing_messages or []),
            Message(role=MessageRole.USER, content=user_message),
        ]

        self._reset([member.key for member in members])
        self._streaming = True
        self.phase = CouncilPhase.INDIVIDUAL
        logger.info(f"Council started with {len(members)} members, chairman {chairman.key}")

        try:
            member_responses: list[ComparisonResponse] = await self._fan_out(members, messages)

            if not self._streaming:
                logger.info("Council stopped before synthesis")
                self._set_status(CHAIRMAN_KEY, ResponseStatus.COMPLETE)
                chairman_response = ComparisonResponse(
                    model=chairman.key,
                    name=chairman.name,
                    status=ResponseStatus.COMPLETE,
                )
            else:
                self.phase = CouncilPhase.SYNTHESIS
                self._set_status(CHAIRMAN_KEY, ResponseStatus.PENDING)
                chairman_response = await self._run_model(
                    CHAIRMAN_KEY,
                    chairman,
                    [
                        Message(
                            role=MessageRole.USER,
                            content=build_chairman_prompt(user_message, member_responses),
                        )
                    ],
                    CHAIRMAN_SYSTEM_PROMPT,
                )
        finally:
            self.phase = CouncilPhase.COMPLETE
            self._streaming = False

        return CouncilResult(
            member_responses=member_responses,
            chairman_response=chairman_response,
        )
