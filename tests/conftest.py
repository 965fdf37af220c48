from typing import Any, Awaitable, Callable

import pytest
from pydantic import BaseModel

from orchestra.agent.executor import ToolExecutor
from orchestra.context.manager import ContextManager
from orchestra.llm.models import (
    ChatOptions,
    ChatResult,
    Message,
    ModelInfo,
    StopReason,
    ToolRound,
    ToolUse,
)
from orchestra.llm.providers.base import ProviderAdapter, ToolCapableProvider
from orchestra.llm.providers.registry import ProviderRegistry
from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolCall, ToolResult
from orchestra.tools.registry import ToolRegistry

Step = ChatResult | Exception | Callable[[ChatOptions], Awaitable[ChatResult]]


class ScriptedProvider(ToolCapableProvider):
    """Tool-capable provider that replays scripted responses."""

    display_name = "Scripted"

    def __init__(self, steps: list[Step], provider_type: str = "fake") -> None:
        super().__init__()
        self.provider_type = provider_type
        self.steps: list[Step] = list(steps)
        self.calls: list[tuple[list[Message], list[ToolRound], ChatOptions]] = []
        self.initialize("test-key")

    async def send_message(self, messages: list[Message], options: ChatOptions) -> ChatResult:
        self.calls.append((list(messages), [], options))
        return await self._next(options)

    async def send_message_with_tool_results(
        self,
        messages: list[Message],
        tool_history: list[ToolRound],
        options: ChatOptions,
    ) -> ChatResult:
        self.calls.append((list(messages), list(tool_history), options))
        return await self._next(options)

    async def _next(self, options: ChatOptions) -> ChatResult:
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return await step(options)
        for tool_use in step.tool_use:
            if options.on_tool_use:
                options.on_tool_use(tool_use)
        if step.content and options.on_chunk:
            options.on_chunk(step.content)
        return step

    async def get_available_models(self) -> list[ModelInfo]:
        return [ModelInfo(key=f"{self.provider_type}/model-a", name="Model A")]


class TextOnlyProvider(ProviderAdapter):
    """Provider without tool-round support."""

    provider_type = "plain"
    display_name = "Plain"

    def __init__(self, result: ChatResult) -> None:
        super().__init__()
        self.result: ChatResult = result
        self.calls: int = 0
        self.initialize("test-key")

    async def send_message(self, messages: list[Message], options: ChatOptions) -> ChatResult:
        self.calls += 1
        return self.result

    async def get_available_models(self) -> list[ModelInfo]:
        return [ModelInfo(key="plain/model", name="Plain")]


class EchoParams(BaseModel):
    text: str


class EchoTool(Tool):
    name = "echo"
    description = "Echo the text back"
    schema = EchoParams

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        return ToolResult.success_result(invocation.call_id, f"echo: {invocation.params['text']}")


class FailingTool(Tool):
    name = "explode"
    description = "Always raises"
    schema = EchoParams

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        raise RuntimeError("boom")


def tool_call_result(
    calls: list[tuple[str, str, dict[str, Any]]],
    content: str = "",
) -> ChatResult:
    """Build a tool_use response from (id, name, input) triples."""
    return ChatResult(
        content=content,
        tool_use=[ToolUse(name=name) for _, name, _ in calls],
        tool_calls=[ToolCall(id=call_id, name=name, input=args) for call_id, name, args in calls],
        stop_reason=StopReason.TOOL_USE,
    )


def text_result(content: str) -> ChatResult:
    return ChatResult(content=content, stop_reason=StopReason.END_TURN)


@pytest.fixture
def tool_registry() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(FailingTool())
    return registry


@pytest.fixture
def tool_executor(tool_registry: ToolRegistry) -> ToolExecutor:
    return ToolExecutor(ContextManager(), tool_registry)


def make_registry(*providers: ProviderAdapter) -> ProviderRegistry:
    return ProviderRegistry(providers=list(providers))
