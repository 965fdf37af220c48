"""
Shared machinery for running one request against several models.

Each model runs through the tool executor in its own task with its own
cancellation token. Failures are isolated per model: they become an
``error`` status on that model and never escape the orchestrator.
"""

import asyncio
import logging

from orchestra.agent.executor import ToolExecutionOptions, ToolExecutionResult, ToolExecutor
from orchestra.exceptions import OrchestraError
from orchestra.fanout.models import ComparisonResponse, ResponseStatus
from orchestra.interfaces import FanOutListenerProtocol
from orchestra.llm.models import CancellationToken, Message, ModelInfo, ToolUse
from orchestra.llm.providers.registry import ProviderRegistry
from orchestra.tools.models import ToolDefinition

logger = logging.getLogger(__name__)


class FanOutOrchestrator:
    """
    Base class of the comparison and council orchestrators.

    Parameters
    ----------
    providers : ProviderRegistry
        Resolves model keys to adapters.
    tool_executor : ToolExecutor
        Runs each model's tool loop.
    system_prompt : str | None, optional
        System prompt given to every model.
    tools : list[ToolDefinition] | None, optional
        Tools offered to every model; the registry's tools when None.
    listener : FanOutListenerProtocol | None, optional
        Receives status changes, text deltas and tool uses per model.

    Attributes
    ----------
    statuses : dict[str, ResponseStatus]
        Current status per model key.
    contents : dict[str, str]
        Text streamed so far per model key.
    tool_uses : dict[str, list[ToolUse]]
        Tool uses announced so far per model key.
    errors : dict[str, str]
        Error message per failed model key.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        tool_executor: ToolExecutor,
        system_prompt: str | None = None,
        tools: list[ToolDefinition] | None = None,
        listener: FanOutListenerProtocol | None = None,
    ) -> None:
        self.providers: ProviderRegistry = providers
        self.tool_executor: ToolExecutor = tool_executor
        self.system_prompt: str | None = system_prompt
        self.tools: list[ToolDefinition] | None = tools
        self.listener: FanOutListenerProtocol | None = listener

        self.statuses: dict[str, ResponseStatus] = {}
        self.contents: dict[str, str] = {}
        self.tool_uses: dict[str, list[ToolUse]] = {}
        self.errors: dict[str, str] = {}
        self._tokens: dict[str, CancellationToken] = {}
        self._streaming: bool = False

    @property
    def is_any_streaming(self) -> bool:
        """Whether a fan-out is in progress and has not been stopped."""
        return self._streaming

    def stop_model(self, key: str) -> None:
        """
        Cancel one model's in-flight request.

        The model ends with ``complete`` status and empty content; text
        already streamed was delivered through the listener.
        """
        token: CancellationToken | None = self._tokens.get(key)
        if token is not None:
            logger.debug(f"Stopping {key}")
            token.cancel()

    def stop_all(self) -> None:
        """Cancel every in-flight request."""
        for key in list(self._tokens):
            self.stop_model(key)
        self._streaming = False

    def _reset(self, keys: list[str]) -> None:
        self.statuses.clear()
        self.contents.clear()
        self.tool_uses.clear()
        self.errors.clear()
        self._tokens.clear()
        for key in keys:
            self._set_status(key, ResponseStatus.PENDING)

    def _set_status(self, key: str, status: ResponseStatus) -> None:
        self.statuses[key] = status
        if self.listener is not None:
            self.listener.on_status(key, status)

    def _handle_chunk(self, key: str, text: str) -> None:
        self.contents[key] = self.contents.get(key, "") + text
        if self.listener is not None:
            self.listener.on_chunk(key, text)

    def _handle_tool_use(self, key: str, tool_use: ToolUse) -> None:
        self.tool_uses.setdefault(key, []).append(tool_use)
        if self.listener is not None:
            self.listener.on_tool_use(key, tool_use)

    def _fail(self, key: str, model: ModelInfo, error: str) -> ComparisonResponse:
        self.errors[key] = error
        self._set_status(key, ResponseStatus.ERROR)
        return ComparisonResponse(
            model=model.key,
            name=model.name,
            status=ResponseStatus.ERROR,
            error=error,
        )

    async def _run_model(
        self,
        key: str,
        model: ModelInfo,
        messages: list[Message],
        system_prompt: str | None,
    ) -> ComparisonResponse:
        """
        Run one model to completion.

        Parameters
        ----------
        key : str
            Key the model's state is tracked under.
        model : ModelInfo
            Model to run.
        messages : list[Message]
            Conversation to send.
        system_prompt : str | None
            System prompt for this model.

        Returns
        -------
        ComparisonResponse
            Terminal response; never raises for provider failures.
        """
        try:
            provider, model_id = self.providers.resolve(model.key)
        except OrchestraError as e:
            logger.warning(f"Cannot run {model.key}: {e}")
            return self._fail(key, model, str(e))

        token = CancellationToken()
        self._tokens[key] = token
        self._set_status(key, ResponseStatus.STREAMING)

        try:
            result: ToolExecutionResult = await self.tool_executor.execute(
                provider,
                messages,
                model_id,
                ToolExecutionOptions(
                    tools=self.tools,
                    system_prompt=system_prompt,
                    on_chunk=lambda text: self._handle_chunk(key, text),
                    on_tool_use=lambda tool_use: self._handle_tool_use(key, tool_use),
                    cancellation=token,
                ),
            )
        except Exception as e:
            logger.error(f"{model.key} failed: {e}")
            return self._fail(key, model, str(e))
        finally:
            self._tokens.pop(key, None)

        self._set_status(key, ResponseStatus.COMPLETE)
        if token.is_cancelled:
            return ComparisonResponse(
                model=model.key,
                name=model.name,
                status=ResponseStatus.COMPLETE,
            )
        return ComparisonResponse(
            model=model.key,
            name=model.name,
            content=result.final_content,
            status=ResponseStatus.COMPLETE,
            tool_use=result.tool_uses,
            skill_use=result.skill_uses,
        )

    async def _fan_out(
        self,
        models: list[ModelInfo],
        messages: list[Message],
    ) -> list[ComparisonResponse]:
        """Run every model concurrently and collect responses in model order."""
        outcomes = await asyncio.gather(
            *(self._run_model(model.key, model, messages, self.system_prompt) for model in models),
            return_exceptions=True,
        )

        responses: list[ComparisonResponse] = []
        for model, outcome in zip(models, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Unexpected failure running {model.key}: {outcome!r}")
                responses.append(self._fail(model.key, model, "Unexpected error"))
            else:
                responses.append(outcome)
        return responses
