"""
Agentic tool-execution loop.

This module runs a conversation turn with tools: it fits the history into
the context budget, sends it to a provider, executes requested tool calls
concurrently through the tool registry, replays the accumulated tool rounds
and repeats until the model stops asking for tools or the iteration cap is
reached.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from orchestra.constants import (
    DEFAULT_MAX_ITERATIONS,
    TOOL_RESULT_PREVIEW_CHARS,
    USE_SKILL_TOOL_NAME,
)
from orchestra.context.manager import ContextManager
from orchestra.interfaces import SkillRegistryProtocol, ToolRegistryProtocol
from orchestra.llm.models import (
    CancellationToken,
    ChatOptions,
    ChatResult,
    ChunkCallback,
    ImageLoader,
    Message,
    SkillUse,
    StopReason,
    TokenUsage,
    ToolRound,
    ToolUse,
    ToolUseCallback,
)
from orchestra.llm.providers.base import ProviderAdapter, ToolCapableProvider
from orchestra.tools.models import ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionOptions:
    """
    Options for one tool-loop run.

    Parameters
    ----------
    max_iterations : int | None, optional
        Maximum tool rounds; the executor default when None.
    tools : list[ToolDefinition] | None, optional
        Tools offered to the model; the registry's tools when None.
    system_prompt : str | None, optional
        System prompt.
    on_chunk : ChunkCallback | None, optional
        Called with streamed text.
    on_tool_use : ToolUseCallback | None, optional
        Called when a tool call appears in the stream.
    cancellation : CancellationToken | None, optional
        Cooperative cancellation token.
    image_loader : ImageLoader | None, optional
        Loads attachment bytes.
    """

    max_iterations: int | None = None
    tools: list[ToolDefinition] | None = None
    system_prompt: str | None = None
    on_chunk: ChunkCallback | None = None
    on_tool_use: ToolUseCallback | None = None
    cancellation: CancellationToken | None = None
    image_loader: ImageLoader | None = None


@dataclass
class ToolExecutionResult:
    """
    Outcome of a tool-loop run.

    Attributes
    ----------
    final_content : str
        Text of the last provider response.
    tool_uses : list[ToolUse]
        Tool uses for display, ``use_skill`` excluded.
    skill_uses : list[SkillUse]
        Distinct skills the model used.
    iterations : int
        Number of tool rounds executed.
    usage : TokenUsage
        Token usage summed across every provider call.
    """

    final_content: str
    tool_uses: list[ToolUse] = field(default_factory=list)
    skill_uses: list[SkillUse] = field(default_factory=list)
    iterations: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)


def build_system_prompt_with_skills(
    skill_registry: SkillRegistryProtocol | None,
    base_prompt: str | None = None,
) -> str:
    """
    Prefix a system prompt with the available-skills fragment.

    Parameters
    ----------
    skill_registry : SkillRegistryProtocol | None
        Skill registry, or None when skills are not used.
    base_prompt : str | None, optional
        Prompt appended after the skills fragment.

    Returns
    -------
    str
        Combined prompt.

    Examples
    --------
    >>> build_system_prompt_with_skills(None, "Be brief.")
    'Be brief.'
    """
    skills_prompt: str = skill_registry.build_system_prompt() if skill_registry else ""
    if not base_prompt:
        return skills_prompt
    if not skills_prompt:
        return base_prompt
    return f"{skills_prompt}\n\n{base_prompt}"


class ToolExecutor:
    """
    Runs the agentic loop against one provider.

    Parameters
    ----------
    context_manager : ContextManager
        Fits history into the context budget.
    tool_registry : ToolRegistryProtocol
        Executes tool calls.
    default_max_iterations : int, default=10
        Iteration cap when the options give none.

    Examples
    --------
    >>> executor = ToolExecutor(ContextManager(), tool_registry)
    >>> result = await executor.execute(provider, messages, "claude-sonnet-4-5-20250929")
    >>> print(result.final_content)
    """

    def __init__(
        self,
        context_manager: ContextManager,
        tool_registry: ToolRegistryProtocol,
        default_max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self.tool_registry: ToolRegistryProtocol = tool_registry
        self.context_manager: ContextManager = context_manager
        self.default_max_iterations: int = default_max_iterations

    async def execute(
        self,
        provider: ProviderAdapter,
        messages: list[Message],
        model: str,
        options: ToolExecutionOptions | None = None,
    ) -> ToolExecutionResult:
        """
        Run a conversation turn, executing tools until the model is done.

        Parameters
        ----------
        provider : ProviderAdapter
            Adapter to call. Tool rounds are only replayed when it is a
            ``ToolCapableProvider``.
        messages : list[Message]
            Conversation history, oldest first.
        model : str
            Vendor model id.
        options : ToolExecutionOptions | None, optional
            Loop options.

        Returns
        -------
        ToolExecutionResult
            Final content, tool and skill uses, and iteration count.
        """
        options = options or ToolExecutionOptions()
        max_iterations: int = (
            options.max_iterations
            if options.max_iterations is not None
            else self.default_max_iterations
        )
        tools: list[ToolDefinition] = (
            options.tools if options.tools is not None else self.tool_registry.definitions()
        )

        chat_options = ChatOptions(
            model=model,
            system_prompt=options.system_prompt,
            tools=tools,
            on_chunk=options.on_chunk,
            on_tool_use=options.on_tool_use,
            cancellation=options.cancellation,
            image_loader=options.image_loader,
        )

        budget = self.context_manager.calculate_budget(options.system_prompt or "", tools)
        prepared = self.context_manager.prepare_context(messages, budget)
        if prepared.truncated:
            logger.info(
                f"Context: dropped {prepared.truncated_count} old messages to fit "
                f"{budget.messages} token budget ({prepared.estimated_tokens} tokens used)"
            )

        result: ChatResult = await provider.send_message(prepared.messages, chat_options)
        usage: TokenUsage = result.usage or TokenUsage()
        tool_uses: list[ToolUse] = list(result.tool_use)
        skill_uses: list[SkillUse] = []
        tool_history: list[ToolRound] = []
        iteration: int = 0

        while (
            iteration < max_iterations
            and result.stop_reason == StopReason.TOOL_USE
            and result.tool_calls
            and isinstance(provider, ToolCapableProvider)
            and not chat_options.is_cancelled
        ):
            iteration += 1
            calls: list[ToolCall] = result.tool_calls

            for call in calls:
                if call.name == USE_SKILL_TOOL_NAME:
                    skill_name = call.input.get("name")
                    if isinstance(skill_name, str) and skill_name and not any(
                        s.name == skill_name for s in skill_uses
                    ):
                        skill_uses.append(SkillUse(name=skill_name))

            tool_results: list[ToolResult] = list(
                await asyncio.gather(*(self._run_tool(call) for call in calls))
            )

            for call, tool_result in zip(calls, tool_results):
                if call.name == USE_SKILL_TOOL_NAME:
                    continue
                entry = next(
                    (t for t in tool_uses if t.name == call.name and t.result is None),
                    None,
                )
                if entry is not None:
                    entry.input = call.input
                    entry.result = tool_result.content[:TOOL_RESULT_PREVIEW_CHARS]
                    entry.is_error = tool_result.is_error

            tool_history.append(
                ToolRound(
                    text_content=result.content or None,
                    tool_calls=calls,
                    tool_results=tool_results,
                )
            )
            logger.debug(
                f"Tool round {iteration}: {', '.join(call.name for call in calls)}"
            )

            if options.on_chunk:
                options.on_chunk(" ")

            result = await provider.send_message_with_tool_results(
                prepared.messages,
                tool_history,
                chat_options,
            )
            if result.usage:
                usage = usage + result.usage
            tool_uses.extend(result.tool_use)

        if (
            iteration >= max_iterations
            and result.stop_reason == StopReason.TOOL_USE
            and result.tool_calls
        ):
            logger.info(f"Tool loop stopped after {max_iterations} iterations")

        return ToolExecutionResult(
            final_content=result.content,
            tool_uses=[t for t in tool_uses if t.name != USE_SKILL_TOOL_NAME],
            skill_uses=skill_uses,
            iterations=iteration,
            usage=usage,
        )

    async def _run_tool(self, call: ToolCall) -> ToolResult:
        """Execute one call, converting any failure into an error result."""
        try:
            tool_result: ToolResult = await self.tool_registry.execute_tool(call)
        except Exception as e:
            logger.exception(f"Tool registry failed executing {call.name}")
            return ToolResult.error_result(call.id, f"Tool execution failed: {e}")
        if tool_result.tool_use_id != call.id:
            tool_result = tool_result.model_copy(update={"tool_use_id": call.id})
        return tool_result
