from datetime import datetime, timedelta

import pytest

from conftest import ScriptedProvider, make_registry, text_result, tool_call_result
from orchestra.config.schema import TriggerConfig
from orchestra.exceptions import InvalidModelStringError, ProviderNotInitializedError
from orchestra.llm.models import Message, MessageRole
from orchestra.triggers.executor import (
    BASELINE_ACKNOWLEDGEMENT,
    DEFAULT_MAIN_PROMPT,
    TriggerExecutor,
    build_trigger_system_prompt,
)
from orchestra.triggers.models import (
    Trigger,
    TriggerAttempt,
    TriggerFiring,
    TriggerOutcome,
)

NOW = datetime(2026, 3, 2, 9, 5)


def _trigger(**overrides) -> Trigger:
    values = {
        "id": "price",
        "model": "fake/model-a",
        "trigger_prompt": "Has the price dropped below $40?",
        "interval_minutes": 30,
    }
    values.update(overrides)
    return Trigger(**values)


def _firing(fired_at: datetime, response: str = "Price is $38") -> TriggerFiring:
    return TriggerFiring(
        fired_at=fired_at,
        trigger_prompt=Message(role=MessageRole.USER, content="check", timestamp=fired_at),
        reasoning=Message(role=MessageRole.ASSISTANT, content="It dropped", timestamp=fired_at),
        main_prompt=Message(role=MessageRole.USER, content="report", timestamp=fired_at),
        main_response=Message(role=MessageRole.ASSISTANT, content=response, timestamp=fired_at),
    )


def test_never_checked_trigger_is_due():
    assert _trigger().is_due(NOW)


def test_trigger_is_due_exactly_at_interval():
    trigger = _trigger(last_checked=NOW - timedelta(minutes=30))

    assert trigger.is_due(NOW)
    assert not trigger.is_due(NOW - timedelta(seconds=1))


def test_from_config_starts_with_empty_state():
    config = TriggerConfig(id="news", model="openai/gpt-4o", trigger_prompt="Any news?", title="News")

    trigger = Trigger.from_config(config)

    assert trigger.display_name == "News"
    assert trigger.last_checked is None
    assert trigger.history == []
    assert trigger.messages == []


def test_record_attempt_prepends_and_caps_history():
    trigger = _trigger()
    for minute in range(5):
        trigger.record_attempt(
            TriggerAttempt(timestamp=NOW + timedelta(minutes=minute), result=TriggerOutcome.SKIPPED),
            limit=3,
        )

    assert len(trigger.history) == 3
    assert trigger.history[0].timestamp == NOW + timedelta(minutes=4)
    assert trigger.last_checked == NOW + timedelta(minutes=4)


def test_apply_firing_never_moves_last_triggered_backwards():
    trigger = _trigger()

    trigger.apply_firing(_firing(NOW))
    trigger.apply_firing(_firing(NOW - timedelta(hours=1)))

    assert trigger.last_triggered == NOW
    assert len(trigger.messages) == 8


def test_provider_history_skips_log_messages():
    trigger = _trigger(
        messages=[
            Message(role=MessageRole.USER, content="a"),
            Message(role=MessageRole.LOG, content="checked"),
            Message(role=MessageRole.ASSISTANT, content="b"),
            Message(role=MessageRole.USER, content="c"),
        ]
    )

    assert [m.content for m in trigger.provider_history(2)] == ["b", "c"]
    assert trigger.provider_history(0) == []


def test_system_prompt_switches_on_baseline():
    first = build_trigger_system_prompt(False, NOW)
    later = build_trigger_system_prompt(True, NOW)

    assert "FIRST CHECK" in first
    assert "BASELINE" in later
    assert "09:05 AM" in first
    assert "Monday, March 02, 2026" in first
    assert '{"triggered": true}' in first


def test_extract_baseline_prefers_main_response():
    trigger = _trigger()
    firing = _firing(NOW, response="Price is $38")
    trigger.apply_firing(firing)

    assert TriggerExecutor.extract_baseline(trigger, trigger.messages) == "Price is $38"


def test_extract_baseline_none_without_firing():
    trigger = _trigger(messages=[Message(role=MessageRole.ASSISTANT, content="hello", timestamp=NOW)])

    assert TriggerExecutor.extract_baseline(trigger, trigger.messages) is None


@pytest.mark.asyncio
async def test_first_run_sends_only_trigger_prompt(tool_executor):
    provider = ScriptedProvider([text_result('Price is $38\n```json\n{"triggered": true}\n```')])
    executor = TriggerExecutor(make_registry(provider), tool_executor, clock=lambda: NOW)

    result = await executor.execute_trigger(_trigger(), [])

    assert result.result == TriggerOutcome.TRIGGERED
    assert result.response == "Price is $38"
    messages, _, options = provider.calls[0]
    assert [m.content for m in messages] == ["Has the price dropped below $40?"]
    assert "FIRST CHECK" in options.system_prompt
    assert options.model == "model-a"


@pytest.mark.asyncio
async def test_baseline_is_injected_with_acknowledgement(tool_executor):
    provider = ScriptedProvider([text_result('```json\n{"triggered": false, "reason": "unchanged"}\n```')])
    executor = TriggerExecutor(make_registry(provider), tool_executor, clock=lambda: NOW)
    trigger = _trigger()
    trigger.apply_firing(_firing(NOW - timedelta(hours=2), response="Price is $38"))

    result = await executor.execute_trigger(trigger, trigger.messages)

    assert result.result == TriggerOutcome.SKIPPED
    assert result.response == "unchanged"
    messages, _, options = provider.calls[0]
    assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT, MessageRole.USER]
    assert messages[0].content == "BASELINE (from your last notification):\n\nPrice is $38"
    assert messages[1].content == BASELINE_ACKNOWLEDGEMENT
    assert "MEANINGFULLY CHANGED" in options.system_prompt


@pytest.mark.asyncio
async def test_long_baseline_is_truncated(tool_executor):
    provider = ScriptedProvider([text_result('{"triggered": false}')])
    executor = TriggerExecutor(
        make_registry(provider),
        tool_executor,
        baseline_max_tokens=10,
        clock=lambda: NOW,
    )
    trigger = _trigger()
    trigger.apply_firing(_firing(NOW, response="x" * 500))

    await executor.execute_trigger(trigger, trigger.messages)

    baseline = provider.calls[0][0][0].content
    assert "[...truncated...]" in baseline
    assert len(baseline) < 120


@pytest.mark.asyncio
async def test_trigger_evaluation_uses_trigger_iteration_cap(tool_executor):
    provider = ScriptedProvider(
        [tool_call_result([(f"call_{i}", "echo", {"text": "x"})]) for i in range(4)]
    )
    executor = TriggerExecutor(make_registry(provider), tool_executor, max_iterations=3)

    result = await executor.execute_trigger(_trigger(), [])

    assert len(provider.calls) == 4
    assert result.result == TriggerOutcome.ERROR


@pytest.mark.asyncio
async def test_provider_failure_becomes_error_result(tool_executor):
    provider = ScriptedProvider([RuntimeError("connection reset")])
    executor = TriggerExecutor(make_registry(provider), tool_executor)

    result = await executor.execute_trigger(_trigger(), [])

    assert result.result == TriggerOutcome.ERROR
    assert result.error == "connection reset"


@pytest.mark.asyncio
async def test_resolution_errors_propagate(tool_executor):
    executor = TriggerExecutor(make_registry(ScriptedProvider([])), tool_executor)

    with pytest.raises(InvalidModelStringError):
        await executor.execute_trigger(_trigger(model="no-slash"), [])
    with pytest.raises(ProviderNotInitializedError):
        await executor.execute_trigger(_trigger(model="anthropic/claude"), [])


@pytest.mark.asyncio
async def test_main_prompt_produces_four_messages_stamped_at_firing(tool_executor):
    provider = ScriptedProvider([text_result("The price fell to $38 today.")])
    executor = TriggerExecutor(make_registry(provider), tool_executor, context_messages=2)
    history = [
        Message(role=MessageRole.USER, content="old question"),
        Message(role=MessageRole.ASSISTANT, content="old answer"),
        Message(role=MessageRole.LOG, content="checked"),
        Message(role=MessageRole.USER, content="recent question"),
    ]
    trigger = _trigger()

    firing = await executor.execute_main_prompt(trigger, "It dropped to $38", history, fired_at=NOW)

    assert [m.timestamp for m in firing.messages] == [NOW] * 4
    assert firing.reasoning.content == "It dropped to $38"
    assert firing.main_prompt.content == DEFAULT_MAIN_PROMPT
    assert firing.main_response.content == "The price fell to $38 today."
    sent = [m.content for m in provider.calls[0][0]]
    assert sent == [
        "old answer",
        "recent question",
        "Has the price dropped below $40?",
        "It dropped to $38",
        DEFAULT_MAIN_PROMPT,
    ]

    trigger.apply_firing(firing)
    assert trigger.last_triggered == NOW
    assert TriggerExecutor.extract_baseline(trigger, trigger.messages) == "The price fell to $38 today."


@pytest.mark.asyncio
async def test_main_prompt_uses_configured_prompt(tool_executor):
    provider = ScriptedProvider([text_result("Summary")])
    executor = TriggerExecutor(make_registry(provider), tool_executor, clock=lambda: NOW)

    firing = await executor.execute_main_prompt(
        _trigger(main_prompt="Summarize the change."),
        "reason",
        [],
    )

    assert firing.main_prompt.content == "Summarize the change."
    assert firing.fired_at == NOW
