"""
Data models for background triggers.

A trigger is an interval-evaluated prompt bound to a conversation. Each
firing appends a four-message block to the trigger's messages; the last
assistant message of that block becomes the baseline for the next check.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field

from orchestra.config.schema import TriggerConfig
from orchestra.constants import DEFAULT_HISTORY_LIMIT
from orchestra.llm.models import Message, MessageRole


class TriggerOutcome(str, Enum):
    """Outcomes of a trigger check."""

    TRIGGERED = "triggered"
    SKIPPED = "skipped"
    ERROR = "error"


class TriggerResult(BaseModel):
    """
    Result of a trigger check.

    Parameters
    ----------
    result : TriggerOutcome
        Verdict of the check.
    response : str
        Response shown to the user when triggered, or the skip reason.
    error : str | None, optional
        Diagnostic message when the check failed.
    """

    result: TriggerOutcome
    response: str = ""
    error: str | None = None

    @property
    def reasoning(self) -> str:
        """Alias of ``response``."""
        return self.response


class TriggerAttempt(BaseModel):
    """A trigger history entry."""

    timestamp: datetime
    result: TriggerOutcome
    reasoning: str = ""
    error: str | None = None


class TriggerFiring(BaseModel):
    """
    The message block produced when a trigger fires.

    Parameters
    ----------
    fired_at : datetime
        Firing time; the main response carries this timestamp.
    trigger_prompt : Message
        User message with the trigger prompt.
    reasoning : Message
        Assistant message with the trigger response.
    main_prompt : Message
        User message with the main prompt.
    main_response : Message
        Assistant message with the main response, the next baseline.
    """

    fired_at: datetime
    trigger_prompt: Message
    reasoning: Message
    main_prompt: Message
    main_response: Message

    @property
    def messages(self) -> list[Message]:
        """The four messages in conversation order."""
        return [self.trigger_prompt, self.reasoning, self.main_prompt, self.main_response]


class Trigger(BaseModel):
    """
    A background trigger and its runtime state.

    Parameters
    ----------
    id : str
        Unique trigger id.
    model : str
        Model key in ``provider/model-id`` form.
    trigger_prompt : str
        Prompt evaluated on every check.
    main_prompt : str | None, optional
        Prompt run when the trigger fires.
    interval_minutes : float, default=60
        Minimum time between checks.
    enabled : bool, default=True
        Whether the scheduler checks this trigger.
    title : str | None, optional
        Display title.
    last_checked : datetime | None, optional
        Time of the last completed check.
    last_triggered : datetime | None, optional
        Time of the last firing.
    history : list[TriggerAttempt], default=[]
        Recent attempts, most recent first.
    messages : list[Message], default=[]
        Conversation accumulated by firings.
    """

    id: str
    model: str
    trigger_prompt: str
    main_prompt: str | None = None
    interval_minutes: float = 60
    enabled: bool = True
    title: str | None = None
    last_checked: datetime | None = None
    last_triggered: datetime | None = None
    history: list[TriggerAttempt] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config: TriggerConfig) -> Trigger:
        """Create a trigger with empty runtime state from its configuration."""
        return cls(**config.model_dump())

    @property
    def display_name(self) -> str:
        """Title, or the id when untitled."""
        return self.title or self.id

    def is_due(self, now: datetime) -> bool:
        """
        Whether the trigger should be checked.

        A trigger that was never checked is always due; otherwise it is due
        once ``interval_minutes`` have elapsed since the last check.

        Parameters
        ----------
        now : datetime
            Current time.

        Returns
        -------
        bool
            True when due.
        """
        if self.last_checked is None:
            return True
        return now - self.last_checked >= timedelta(minutes=self.interval_minutes)

    def provider_history(self, limit: int) -> list[Message]:
        """Return the last ``limit`` non-log messages."""
        if limit <= 0:
            return []
        return [m for m in self.messages if m.role != MessageRole.LOG][-limit:]

    def record_attempt(
        self,
        attempt: TriggerAttempt,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        """
        Record a check attempt.

        Sets ``last_checked`` to the attempt time and prepends the attempt to
        the history, keeping at most ``limit`` entries.
        """
        self.last_checked = attempt.timestamp
        self.history = [attempt, *self.history][:limit]

    def apply_firing(self, firing: TriggerFiring) -> None:
        """
        Append a firing's messages and advance ``last_triggered``.

        ``last_triggered`` never moves backwards.
        """
        self.messages.extend(firing.messages)
        if self.last_triggered is None or firing.fired_at > self.last_triggered:
            self.last_triggered = firing.fired_at
