from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import ScriptedProvider, TextOnlyProvider, text_result, tool_call_result
from orchestra.agent.executor import (
    ToolExecutionOptions,
    ToolExecutor,
    build_system_prompt_with_skills,
)
from orchestra.config.schema import SkillDefinition
from orchestra.context.manager import ContextManager
from orchestra.llm.models import CancellationToken, ChatOptions, ChatResult, Message, StopReason, TokenUsage
from orchestra.skills.registry import SkillRegistry
from orchestra.tools.models import ToolResult


def _messages() -> list[Message]:
    return [Message(role="user", content="What is on example.com?")]


@pytest.mark.asyncio
async def test_text_response_needs_no_tool_round(tool_executor):
    provider = ScriptedProvider([text_result("Hello!")])

    result = await tool_executor.execute(provider, _messages(), "model-a")

    assert result.final_content == "Hello!"
    assert result.iterations == 0
    assert result.tool_uses == []
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_tool_round_pairs_every_call_with_its_result(tool_executor):
    provider = ScriptedProvider(
        [
            tool_call_result(
                [("call_1", "echo", {"text": "one"}), ("call_2", "echo", {"text": "two"})],
                content="Let me check.",
            ),
            text_result("Both echoed."),
        ]
    )

    result = await tool_executor.execute(provider, _messages(), "model-a")

    assert result.final_content == "Both echoed."
    assert result.iterations == 1
    _, history, _ = provider.calls[1]
    assert len(history) == 1
    round_ = history[0]
    assert round_.text_content == "Let me check."
    assert [c.id for c in round_.tool_calls] == ["call_1", "call_2"]
    assert round_.result_for("call_1").content == "echo: one"
    assert round_.result_for("call_2").content == "echo: two"


@pytest.mark.asyncio
async def test_tool_uses_get_input_and_result_preview(tool_executor):
    provider = ScriptedProvider(
        [
            tool_call_result([("call_1", "echo", {"text": "hi"})]),
            text_result("done"),
        ]
    )

    result = await tool_executor.execute(provider, _messages(), "model-a")

    assert len(result.tool_uses) == 1
    assert result.tool_uses[0].name == "echo"
    assert result.tool_uses[0].input == {"text": "hi"}
    assert result.tool_uses[0].result == "echo: hi"
    assert result.tool_uses[0].is_error is False


@pytest.mark.asyncio
async def test_tool_history_accumulates_across_rounds(tool_executor):
    provider = ScriptedProvider(
        [
            tool_call_result([("call_1", "echo", {"text": "a"})]),
            tool_call_result([("call_2", "echo", {"text": "b"})]),
            text_result("finished"),
        ]
    )

    result = await tool_executor.execute(provider, _messages(), "model-a")

    assert result.iterations == 2
    assert [len(history) for _, history, _ in provider.calls] == [0, 1, 2]
    assert provider.calls[2][1][1].tool_calls[0].id == "call_2"


@pytest.mark.asyncio
async def test_iteration_cap_stops_the_loop(tool_executor):
    provider = ScriptedProvider(
        [tool_call_result([(f"call_{i}", "echo", {"text": str(i)})], content=f"step {i}") for i in range(5)]
    )

    result = await tool_executor.execute(
        provider,
        _messages(),
        "model-a",
        ToolExecutionOptions(max_iterations=2),
    )

    assert result.iterations == 2
    assert len(provider.calls) == 3
    assert result.final_content == "step 2"


@pytest.mark.asyncio
async def test_text_only_provider_never_loops(tool_executor):
    provider = TextOnlyProvider(tool_call_result([("call_1", "echo", {"text": "x"})], content="partial"))

    result = await tool_executor.execute(provider, _messages(), "plain-model")

    assert provider.calls == 1
    assert result.iterations == 0
    assert result.final_content == "partial"


@pytest.mark.asyncio
async def test_tool_failures_are_reported_to_the_model(tool_executor):
    provider = ScriptedProvider(
        [
            tool_call_result(
                [
                    ("call_1", "explode", {"text": "x"}),
                    ("call_2", "missing_tool", {}),
                    ("call_3", "echo", {}),
                ]
            ),
            text_result("Sorry."),
        ]
    )

    result = await tool_executor.execute(provider, _messages(), "model-a")

    round_ = provider.calls[1][1][0]
    assert round_.result_for("call_1").is_error
    assert round_.result_for("call_1").content == "Internal error: boom"
    assert round_.result_for("call_2").content == "Unknown tool: missing_tool"
    assert round_.result_for("call_3").content.startswith("Invalid parameters:")
    assert result.tool_uses[0].is_error is True


@pytest.mark.asyncio
async def test_registry_exception_becomes_error_result():
    registry = MagicMock()
    registry.definitions.return_value = []
    registry.execute_tool = AsyncMock(side_effect=RuntimeError("registry down"))
    executor = ToolExecutor(ContextManager(), registry)
    provider = ScriptedProvider(
        [
            tool_call_result([("call_1", "echo", {"text": "x"})]),
            text_result("ok"),
        ]
    )

    result = await executor.execute(provider, _messages(), "model-a")

    tool_result = provider.calls[1][1][0].tool_results[0]
    assert tool_result.tool_use_id == "call_1"
    assert tool_result.is_error is True
    assert tool_result.content == "Tool execution failed: registry down"
    assert result.final_content == "ok"


@pytest.mark.asyncio
async def test_result_id_is_forced_to_call_id():
    registry = MagicMock()
    registry.definitions.return_value = []
    registry.execute_tool = AsyncMock(return_value=ToolResult.success_result("wrong", "fine"))
    executor = ToolExecutor(ContextManager(), registry)
    provider = ScriptedProvider(
        [
            tool_call_result([("call_9", "echo", {"text": "x"})]),
            text_result("ok"),
        ]
    )

    await executor.execute(provider, _messages(), "model-a")

    assert provider.calls[1][1][0].tool_results[0].tool_use_id == "call_9"


@pytest.mark.asyncio
async def test_skill_uses_are_tracked_and_hidden_from_tool_uses():
    skills = SkillRegistry([SkillDefinition(name="weather", description="Forecasts", instructions="Use the API")])
    registry = MagicMock()
    registry.definitions.return_value = []
    registry.execute_tool = AsyncMock(return_value=ToolResult.success_result("x", "instructions"))
    executor = ToolExecutor(ContextManager(), registry)
    provider = ScriptedProvider(
        [
            tool_call_result([("call_1", "use_skill", {"name": "weather"})]),
            tool_call_result(
                [("call_2", "use_skill", {"name": "weather"}), ("call_3", "echo", {"text": "x"})]
            ),
            text_result("Sunny."),
        ]
    )

    result = await executor.execute(
        provider,
        _messages(),
        "model-a",
        ToolExecutionOptions(system_prompt=build_system_prompt_with_skills(skills, "Be brief.")),
    )

    assert [s.name for s in result.skill_uses] == ["weather"]
    assert [t.name for t in result.tool_uses] == ["echo"]


@pytest.mark.asyncio
async def test_space_is_streamed_between_rounds(tool_executor):
    chunks: list[str] = []
    provider = ScriptedProvider(
        [
            tool_call_result([("call_1", "echo", {"text": "x"})], content="Checking."),
            text_result("Done."),
        ]
    )

    await tool_executor.execute(
        provider,
        _messages(),
        "model-a",
        ToolExecutionOptions(on_chunk=chunks.append),
    )

    assert chunks == ["Checking.", " ", "Done."]


@pytest.mark.asyncio
async def test_cancellation_stops_before_next_round(tool_executor):
    token = CancellationToken()

    async def cancelled_response(options: ChatOptions) -> ChatResult:
        token.cancel()
        return tool_call_result([("call_1", "echo", {"text": "x"})], content="partial")

    provider = ScriptedProvider([cancelled_response])

    result = await tool_executor.execute(
        provider,
        _messages(),
        "model-a",
        ToolExecutionOptions(cancellation=token),
    )

    assert result.iterations == 0
    assert result.final_content == "partial"
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_usage_is_summed_across_calls(tool_executor):
    first = tool_call_result([("call_1", "echo", {"text": "x"})])
    first.usage = TokenUsage(input_tokens=100, output_tokens=10)
    second = ChatResult(
        content="done",
        stop_reason=StopReason.END_TURN,
        usage=TokenUsage(input_tokens=150, output_tokens=5),
    )
    provider = ScriptedProvider([first, second])

    result = await tool_executor.execute(provider, _messages(), "model-a")

    assert result.usage.input_tokens == 250
    assert result.usage.output_tokens == 15


@pytest.mark.asyncio
async def test_options_carry_model_system_prompt_and_tools(tool_executor):
    provider = ScriptedProvider([text_result("hi")])

    await tool_executor.execute(
        provider,
        _messages(),
        "model-a",
        ToolExecutionOptions(system_prompt="Be brief."),
    )

    options = provider.calls[0][2]
    assert options.model == "model-a"
    assert options.system_prompt == "Be brief."
    assert {t.name for t in options.tools} == {"echo", "explode"}


def test_build_system_prompt_with_skills():
    skills = SkillRegistry([SkillDefinition(name="weather", description="Forecasts")])

    combined = build_system_prompt_with_skills(skills, "Be brief.")

    assert combined.endswith("\n\nBe brief.")
    assert "weather" in combined
    assert build_system_prompt_with_skills(None, "Be brief.") == "Be brief."
    assert build_system_prompt_with_skills(SkillRegistry([]), None) == ""
