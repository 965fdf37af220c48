"""
Interval scheduler for background triggers.

The scheduler wakes every ``check_interval_seconds``, picks enabled triggers
that are due and not already being checked, and evaluates them concurrently
through the trigger executor. Outcomes are reported through callbacks,
which may be plain functions or coroutines.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from orchestra.constants import (
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_TRIGGER_CONTEXT_MESSAGES,
)
from orchestra.triggers.executor import TriggerExecutor
from orchestra.triggers.models import Trigger, TriggerAttempt, TriggerOutcome, TriggerResult

logger = logging.getLogger(__name__)


@dataclass
class SchedulerCallbacks:
    """
    Hooks invoked by the scheduler.

    Every hook except ``get_triggers`` is optional and may return an
    awaitable.

    Parameters
    ----------
    get_triggers : Callable[[], list[Trigger]]
        Returns the current triggers.
    on_trigger_fired : Callable[[Trigger, TriggerResult], Any] | None
        Called when a check triggered.
    on_trigger_skipped : Callable[[Trigger, TriggerResult], Any] | None
        Called when a check was skipped.
    on_trigger_checking : Callable[[str], Any] | None
        Called with the trigger id when a check starts.
    on_trigger_check_complete : Callable[[str], Any] | None
        Called with the trigger id when a check ends, whatever the outcome.
    on_error : Callable[[Trigger, Exception], Any] | None
        Called when a check failed.
    """

    get_triggers: Callable[[], list[Trigger]]
    on_trigger_fired: Callable[[Trigger, TriggerResult], Any] | None = None
    on_trigger_skipped: Callable[[Trigger, TriggerResult], Any] | None = None
    on_trigger_checking: Callable[[str], Any] | None = None
    on_trigger_check_complete: Callable[[str], Any] | None = None
    on_error: Callable[[Trigger, Exception], Any] | None = None


async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


class TriggerCheckError(Exception):
    """A trigger check that returned an ``error`` result."""


class TriggerScheduler:
    """
    Runs due trigger checks on an interval.

    Parameters
    ----------
    executor : TriggerExecutor
        Evaluates triggers.
    check_interval_seconds : float, default=60.0
        Time between scheduler passes.
    history_limit : int, default=50
        Attempts kept in each trigger's history.
    context_messages : int, default=8
        Non-log messages given to the executor.
    clock : Callable[[], datetime], optional
        Returns the current time.

    Examples
    --------
    >>> scheduler = TriggerScheduler(executor)
    >>> scheduler.start(SchedulerCallbacks(get_triggers=lambda: triggers))
    >>> ...
    >>> await scheduler.stop()
    """

    def __init__(
        self,
        executor: TriggerExecutor,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        context_messages: int = DEFAULT_TRIGGER_CONTEXT_MESSAGES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.executor: TriggerExecutor = executor
        self.check_interval_seconds: float = check_interval_seconds
        self.history_limit: int = history_limit
        self.context_messages: int = context_messages
        self._clock: Callable[[], datetime] = clock
        self._active_checks: set[str] = set()
        self._check_tasks: set[asyncio.Task[TriggerResult]] = set()
        self._callbacks: SchedulerCallbacks | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    @property
    def is_running(self) -> bool:
        """Whether the scheduler loop is active."""
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def active_checks(self) -> list[str]:
        """Ids of triggers currently being checked."""
        return list(self._active_checks)

    def start(self, callbacks: SchedulerCallbacks) -> None:
        """
        Start the scheduler loop.

        One pass runs right away, then one every ``check_interval_seconds``.
        Starting a running scheduler does nothing.

        Parameters
        ----------
        callbacks : SchedulerCallbacks
            Trigger source and outcome hooks.
        """
        if self.is_running:
            return

        self._callbacks = callbacks
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run(self._stop_event))
        logger.info(f"Trigger scheduler started (every {self.check_interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the loop. Checks already in flight are left to finish."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._loop_task is not None:
            await self._loop_task
        self._loop_task = None
        self._stop_event = None
        self._callbacks = None
        logger.info("Trigger scheduler stopped")

    async def wait_for_checks(self) -> None:
        """Wait until every in-flight check has finished."""
        while self._check_tasks:
            await asyncio.gather(*list(self._check_tasks), return_exceptions=True)

    async def _run(self, stop_event: asyncio.Event) -> None:
        self.run_scheduled_checks()

        while not stop_event.is_set():
            try:
                await asyncio.wait_for(
                    stop_event.wait(),
                    timeout=self.check_interval_seconds,
                )
            except asyncio.TimeoutError:
                self.run_scheduled_checks()

    def run_scheduled_checks(self) -> list[asyncio.Task[TriggerResult]]:
        """
        Run one scheduler pass.

        Starts a check task for every enabled trigger that is due and not
        already being checked. The trigger id is marked active before its
        task is created, so a second pass cannot start a duplicate.

        Returns
        -------
        list[asyncio.Task[TriggerResult]]
            Tasks started by this pass.
        """
        callbacks = self._callbacks
        if callbacks is None:
            return []

        now: datetime = self._clock()
        started: list[asyncio.Task[TriggerResult]] = []
        for trigger in callbacks.get_triggers():
            if not trigger.enabled or not trigger.is_due(now):
                continue
            if trigger.id in self._active_checks:
                logger.debug(f"Skipping trigger {trigger.id}: check already in progress")
                continue

            self._active_checks.add(trigger.id)
            task = asyncio.create_task(self._check_trigger(trigger, callbacks))
            self._check_tasks.add(task)
            task.add_done_callback(self._check_tasks.discard)
            started.append(task)
        return started

    async def manual_check(self, trigger: Trigger, callbacks: SchedulerCallbacks | None = None) -> TriggerResult | None:
        """
        Check a trigger now, whether or not it is due.

        Parameters
        ----------
        trigger : Trigger
            Trigger to check.
        callbacks : SchedulerCallbacks | None, optional
            Hooks to notify; the running scheduler's hooks by default.

        Returns
        -------
        TriggerResult | None
            Result of the check, or None when the trigger is disabled or a
            check of it is already in progress.
        """
        if not trigger.enabled:
            return None
        if trigger.id in self._active_checks:
            logger.debug(f"Skipping manual check of {trigger.id}: check already in progress")
            return None
        callbacks = callbacks or self._callbacks
        self._active_checks.add(trigger.id)
        return await self._check_trigger(trigger, callbacks)

    async def _check_trigger(
        self,
        trigger: Trigger,
        callbacks: SchedulerCallbacks | None,
    ) -> TriggerResult:
        try:
            await _notify(callbacks and callbacks.on_trigger_checking, trigger.id)
            logger.info(f"Checking trigger {trigger.display_name}")

            try:
                result: TriggerResult = await self.executor.execute_trigger(
                    trigger,
                    trigger.provider_history(self.context_messages),
                )
            except Exception as e:
                logger.error(f"Trigger {trigger.display_name} check failed: {e}")
                result = TriggerResult(result=TriggerOutcome.ERROR, error=str(e))
                error: Exception | None = e
            else:
                error = None

            trigger.record_attempt(
                TriggerAttempt(
                    timestamp=self._clock(),
                    result=result.result,
                    reasoning=result.reasoning,
                    error=result.error,
                ),
                self.history_limit,
            )

            try:
                if result.result == TriggerOutcome.TRIGGERED:
                    logger.info(f"Trigger {trigger.display_name} TRIGGERED")
                    await _notify(callbacks and callbacks.on_trigger_fired, trigger, result)
                elif result.result == TriggerOutcome.SKIPPED:
                    logger.info(f"Trigger {trigger.display_name} skipped: {result.response}")
                    await _notify(callbacks and callbacks.on_trigger_skipped, trigger, result)
                else:
                    if error is None:
                        logger.error(f"Trigger {trigger.display_name} check failed: {result.error}")
                        error = TriggerCheckError(result.error or "Unknown error")
                    await _notify(callbacks and callbacks.on_error, trigger, error)
            except Exception as e:
                logger.exception(f"Trigger {trigger.display_name} callback failed")
                if result.result != TriggerOutcome.ERROR:
                    await _notify(callbacks and callbacks.on_error, trigger, e)
            return result
        finally:
            self._active_checks.discard(trigger.id)
            await _notify(callbacks and callbacks.on_trigger_check_complete, trigger.id)
