"""
Trigger evaluation with baseline diffing.

The executor asks a model whether a trigger condition is met. When the
trigger fired before, the response from that firing is injected as a
baseline so the model only fires again on a meaningful change.
"""

import logging
from datetime import datetime
from typing import Callable

from orchestra.agent.executor import (
    ToolExecutionOptions,
    ToolExecutionResult,
    ToolExecutor,
    build_system_prompt_with_skills,
)
from orchestra.constants import (
    DEFAULT_BASELINE_MAX_TOKENS,
    DEFAULT_TRIGGER_CONTEXT_MESSAGES,
    DEFAULT_TRIGGER_MAX_ITERATIONS,
)
from orchestra.context.estimator import truncate_to_token_budget
from orchestra.interfaces import SkillRegistryProtocol
from orchestra.llm.models import Message, MessageRole
from orchestra.llm.providers.registry import ProviderRegistry
from orchestra.triggers.models import Trigger, TriggerFiring, TriggerOutcome, TriggerResult
from orchestra.triggers.verdict import parse_verdict

logger = logging.getLogger(__name__)

BASELINE_ACKNOWLEDGEMENT: str = (
    "I will compare the current state against this baseline and only trigger "
    "if there is a meaningful change."
)

DEFAULT_MAIN_PROMPT: str = (
    "The condition you were monitoring has been met. Using the findings above, "
    "write a clear, concise update for the user with the relevant details."
)

BASELINE_INSTRUCTIONS: str = """A BASELINE from your last notification is provided below.
The baseline is your last assistant message from when you previously triggered.
Only trigger if the current state has MEANINGFULLY CHANGED from this baseline.
Do NOT re-trigger for the same condition that was already reported.
Compare the current data against the baseline to detect changes."""

FIRST_RUN_INSTRUCTIONS: str = """This is the FIRST CHECK - no baseline exists yet.
Gather the current state and evaluate the condition.
If the condition is already met, trigger and report it.
Your assistant response will become the baseline for future comparisons."""

TRIGGER_SYSTEM_PROMPT: str = """You are a trigger evaluation system that monitors conditions and notifies the user when they're met.

Current time: {time} on {date}
Timezone: {timezone}

{instructions}

You have access to tools like web_search to gather real-time information. Use them as needed.

Your response format depends on whether you should trigger:

IF TRIGGERING (condition met / changed meaningfully):
Provide a helpful, informative response to the user about the current state.
Include specific data points (numbers, prices, percentages, etc.) that are relevant.
End your response with a JSON block:
```json
{{"triggered": true}}
```

IF NOT TRIGGERING (condition not met / no meaningful change):
End with a JSON block explaining why:
```json
{{"triggered": false, "reason": "brief explanation"}}
```

You MUST end with the JSON block. Any text before it will be shown to the user if triggered."""


def build_trigger_system_prompt(has_baseline: bool, now: datetime) -> str:
    """
    Build the trigger evaluation instructions for the given time.

    Parameters
    ----------
    has_baseline : bool
        Whether a baseline block precedes the trigger prompt.
    now : datetime
        Current time, formatted into the prompt.

    Returns
    -------
    str
        System prompt text.
    """
    local_now: datetime = now.astimezone()
    return TRIGGER_SYSTEM_PROMPT.format(
        time=local_now.strftime("%I:%M %p"),
        date=local_now.strftime("%A, %B %d, %Y"),
        timezone=local_now.tzname() or "UTC",
        instructions=BASELINE_INSTRUCTIONS if has_baseline else FIRST_RUN_INSTRUCTIONS,
    )


class TriggerExecutor:
    """
    Evaluates triggers and runs their main prompt when they fire.

    Parameters
    ----------
    providers : ProviderRegistry
        Resolves the trigger's model key.
    tool_executor : ToolExecutor
        Runs the tool loop.
    skill_registry : SkillRegistryProtocol | None, optional
        Adds the skills fragment to system prompts.
    max_iterations : int, default=5
        Tool iterations allowed while evaluating a trigger.
    baseline_max_tokens : int, default=2000
        Token cap of the injected baseline.
    context_messages : int, default=8
        History messages given to the main prompt.
    clock : Callable[[], datetime], optional
        Returns the current time.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        tool_executor: ToolExecutor,
        skill_registry: SkillRegistryProtocol | None = None,
        max_iterations: int = DEFAULT_TRIGGER_MAX_ITERATIONS,
        baseline_max_tokens: int = DEFAULT_BASELINE_MAX_TOKENS,
        context_messages: int = DEFAULT_TRIGGER_CONTEXT_MESSAGES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.providers: ProviderRegistry = providers
        self.tool_executor: ToolExecutor = tool_executor
        self.skill_registry: SkillRegistryProtocol | None = skill_registry
        self.max_iterations: int = max_iterations
        self.baseline_max_tokens: int = baseline_max_tokens
        self.context_messages: int = context_messages
        self._clock: Callable[[], datetime] = clock

    @staticmethod
    def extract_baseline(trigger: Trigger, messages: list[Message]) -> str | None:
        """
        Return the response recorded when the trigger last fired.

        The baseline is the assistant message whose timestamp equals
        ``last_triggered``; the latest such message wins.

        Parameters
        ----------
        trigger : Trigger
            Trigger being evaluated.
        messages : list[Message]
            Conversation history.

        Returns
        -------
        str | None
            Baseline text, or None for a first run.
        """
        if trigger.last_triggered is None:
            return None
        for message in reversed(messages):
            if message.role == MessageRole.ASSISTANT and message.timestamp == trigger.last_triggered:
                return message.content
        return None

    async def execute_trigger(self, trigger: Trigger, messages: list[Message]) -> TriggerResult:
        """
        Evaluate a trigger condition.

        Parameters
        ----------
        trigger : Trigger
            Trigger to evaluate.
        messages : list[Message]
            Conversation history used to find the baseline.

        Returns
        -------
        TriggerResult
            Parsed verdict. Failures after provider resolution are returned
            as ``error`` results.

        Raises
        ------
        InvalidModelStringError
            If the trigger's model key is malformed.
        ProviderNotInitializedError
            If the trigger's provider is not available.
        """
        provider, model_id = self.providers.resolve(trigger.model)

        baseline: str | None = self.extract_baseline(trigger, messages)
        prompt_messages: list[Message] = []
        if baseline:
            capped: str = truncate_to_token_budget(baseline, self.baseline_max_tokens)
            prompt_messages.append(
                Message(
                    role=MessageRole.USER,
                    content=f"BASELINE (from your last notification):\n\n{capped}",
                )
            )
            prompt_messages.append(
                Message(role=MessageRole.ASSISTANT, content=BASELINE_ACKNOWLEDGEMENT)
            )
        prompt_messages.append(Message(role=MessageRole.USER, content=trigger.trigger_prompt))

        system_prompt: str = build_system_prompt_with_skills(
            self.skill_registry,
            build_trigger_system_prompt(bool(baseline), self._clock()),
        )

        try:
            result: ToolExecutionResult = await self.tool_executor.execute(
                provider,
                prompt_messages,
                model_id,
                ToolExecutionOptions(
                    max_iterations=self.max_iterations,
                    system_prompt=system_prompt,
                ),
            )
        except Exception as e:
            logger.error(f"Trigger {trigger.id} evaluation failed: {e}")
            return TriggerResult(result=TriggerOutcome.ERROR, error=str(e))

        verdict: TriggerResult = parse_verdict(result.final_content)
        logger.debug(f"Trigger {trigger.id} verdict: {verdict.result.value}")
        return verdict

    async def execute_main_prompt(
        self,
        trigger: Trigger,
        reasoning: str,
        messages: list[Message],
        fired_at: datetime | None = None,
    ) -> TriggerFiring:
        """
        Run the trigger's main prompt after it fired.

        Parameters
        ----------
        trigger : Trigger
            Trigger that fired.
        reasoning : str
            Response of the trigger evaluation.
        messages : list[Message]
            Conversation history; the most recent non-log messages are used.
        fired_at : datetime | None, optional
            Firing time. Defaults to now.

        Returns
        -------
        TriggerFiring
            The four-message block. The main response is timestamped
            ``fired_at`` so it becomes the next baseline.

        Raises
        ------
        InvalidModelStringError
            If the trigger's model key is malformed.
        ProviderNotInitializedError
            If the trigger's provider is not available.
        """
        provider, model_id = self.providers.resolve(trigger.model)
        fired_at = fired_at or self._clock()
        main_prompt: str = trigger.main_prompt or DEFAULT_MAIN_PROMPT

        trigger_prompt_message = Message(
            role=MessageRole.USER,
            content=trigger.trigger_prompt,
            timestamp=fired_at,
        )
        reasoning_message = Message(
            role=MessageRole.ASSISTANT,
            content=reasoning,
            model=trigger.model,
            timestamp=fired_at,
        )
        main_prompt_message = Message(
            role=MessageRole.USER,
            content=main_prompt,
            timestamp=fired_at,
        )

        history: list[Message] = [m for m in messages if m.role != MessageRole.LOG]
        history = history[-self.context_messages :] if self.context_messages > 0 else []

        result: ToolExecutionResult = await self.tool_executor.execute(
            provider,
            [*history, trigger_prompt_message, reasoning_message, main_prompt_message],
            model_id,
            ToolExecutionOptions(
                system_prompt=build_system_prompt_with_skills(self.skill_registry) or None,
            ),
        )
        logger.info(f"Trigger {trigger.id} main prompt completed after {result.iterations} tool rounds")

        return TriggerFiring(
            fired_at=fired_at,
            trigger_prompt=trigger_prompt_message,
            reasoning=reasoning_message,
            main_prompt=main_prompt_message,
            main_response=Message(
                role=MessageRole.ASSISTANT,
                content=result.final_content,
                model=trigger.model,
                tool_use=result.tool_uses,
                skill_use=result.skill_uses,
                timestamp=fired_at,
            ),
        )
