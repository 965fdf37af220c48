"""
Main entry point for the Orchestra CLI.

This module provides commands to chat with a model through the tool loop,
compare several models side by side, run a council, and check or watch
background triggers.
"""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from orchestra.agent.executor import ToolExecutionOptions, ToolExecutionResult
from orchestra.config.loader import load_configuration
from orchestra.config.schema import Configuration
from orchestra.exceptions import ConfigurationError, OrchestraError
from orchestra.fanout.comparison import ComparisonOrchestrator
from orchestra.fanout.council import CouncilOrchestrator
from orchestra.fanout.models import ResponseStatus
from orchestra.llm.models import CancellationToken, Message, MessageRole, ModelInfo
from orchestra.session import Session
from orchestra.triggers.models import Trigger, TriggerFiring, TriggerOutcome, TriggerResult
from orchestra.triggers.scheduler import SchedulerCallbacks, TriggerScheduler
from orchestra.ui.console import get_console
from orchestra.ui.renderer import FanOutProgress, Renderer

logger = logging.getLogger(__name__)

console = get_console()


class CLI:
    """
    Command implementations for the Orchestra CLI.

    Parameters
    ----------
    config : Configuration
        Configuration object.

    Examples
    --------
    >>> config = load_configuration()
    >>> cli = CLI(config)
    >>> await cli.run_single("Hello", None)
    """

    def __init__(self, config: Configuration) -> None:
        self.config: Configuration = config
        self.renderer: Renderer = Renderer(console)
        self.messages: list[Message] = []

    async def _chat_turn(self, session: Session, model_key: str, user_input: str) -> str | None:
        """Send one user message through the tool loop and print the response."""
        provider, model_id = session.providers.resolve(model_key)
        self.messages.append(Message(role=MessageRole.USER, content=user_input))

        cancellation = CancellationToken()
        self.renderer.begin_assistant(model_key)
        try:
            result: ToolExecutionResult = await session.tool_executor.execute(
                provider,
                self.messages,
                model_id,
                ToolExecutionOptions(
                    system_prompt=session.system_prompt,
                    on_chunk=self.renderer.stream_delta,
                    on_tool_use=self.renderer.print_tool_start,
                    cancellation=cancellation,
                ),
            )
        except asyncio.CancelledError:
            cancellation.cancel()
            raise
        finally:
            self.renderer.end_assistant()

        self.renderer.print_tool_uses(result.tool_uses)
        self.renderer.print_skill_uses(result.skill_uses)
        logger.debug(
            f"Turn used {result.usage.input_tokens} input / {result.usage.output_tokens} output tokens"
        )
        self.messages.append(
            Message(
                role=MessageRole.ASSISTANT,
                content=result.final_content,
                model=model_key,
                tool_use=result.tool_uses,
                skill_use=result.skill_uses,
            )
        )
        return result.final_content

    async def run_single(self, prompt: str, model: str | None) -> str | None:
        """
        Answer one prompt and exit.

        Returns
        -------
        str | None
            Final response, or None if an error occurred.
        """
        async with Session(self.config) as session:
            try:
                model_key: str = await session.resolve_model(model)
                return await self._chat_turn(session, model_key, prompt)
            except OrchestraError as e:
                self.renderer.print_error(str(e))
                return None

    async def run_interactive(self, model: str | None) -> None:
        """Run a chat loop until ``/exit`` or end of input."""
        async with Session(self.config) as session:
            try:
                model_key: str = await session.resolve_model(model)
            except OrchestraError as e:
                self.renderer.print_error(str(e))
                return

            self.renderer.print_welcome(
                "Orchestra",
                lines=[
                    f"model: {model_key}",
                    f"providers: {', '.join(session.providers.enabled_provider_types())}",
                    "commands: /model <provider/model-id> /clear /exit",
                ],
            )

            while True:
                try:
                    user_input: str = console.input("\n[user]→[/user] ").strip()
                except (EOFError, KeyboardInterrupt):
                    break
                if not user_input:
                    continue

                if user_input in ("/exit", "/quit"):
                    break
                if user_input == "/clear":
                    self.messages.clear()
                    console.print("[muted]Conversation cleared[/muted]")
                    continue
                if user_input.startswith("/model"):
                    parts: list[str] = user_input.split(maxsplit=1)
                    if len(parts) == 2:
                        model_key = parts[1]
                    console.print(f"[info]model: {model_key}[/info]")
                    continue

                try:
                    await self._chat_turn(session, model_key, user_input)
                except OrchestraError as e:
                    self.renderer.print_error(str(e))

    async def run_compare(self, prompt: str, models: list[str]) -> bool:
        """Compare several models on one prompt. Returns False if every model failed."""
        async with Session(self.config) as session:
            try:
                infos: list[ModelInfo] = [await session.model_info(key) for key in models]
            except OrchestraError as e:
                self.renderer.print_error(str(e))
                return False
            orchestrator = ComparisonOrchestrator(
                session.providers,
                session.tool_executor,
                system_prompt=session.system_prompt,
                listener=FanOutProgress(self.renderer),
            )
            responses = await orchestrator.start_streaming(prompt, infos)
            self.renderer.print_comparison(responses)
            return any(r.status == ResponseStatus.COMPLETE for r in responses)

    async def run_council(self, prompt: str, members: list[str], chairman: str) -> bool:
        """Run a council. Returns False if the synthesis failed."""
        async with Session(self.config) as session:
            try:
                member_infos: list[ModelInfo] = [await session.model_info(key) for key in members]
                chairman_info: ModelInfo = await session.model_info(chairman)
            except OrchestraError as e:
                self.renderer.print_error(str(e))
                return False
            orchestrator = CouncilOrchestrator(
                session.providers,
                session.tool_executor,
                system_prompt=session.system_prompt,
                listener=FanOutProgress(self.renderer),
            )
            result = await orchestrator.start_council(prompt, member_infos, chairman_info)
            self.renderer.print_council(result)
            return result.chairman_response.status == ResponseStatus.COMPLETE

    async def _fire(self, session: Session, trigger: Trigger, result: TriggerResult) -> None:
        """Run the main prompt of a fired trigger and record the firing."""
        firing: TriggerFiring = await session.trigger_executor.execute_main_prompt(
            trigger,
            result.reasoning,
            trigger.messages,
        )
        trigger.apply_firing(firing)
        self.renderer.print_trigger_result(
            trigger,
            TriggerResult(result=TriggerOutcome.TRIGGERED, response=firing.main_response.content),
        )

    async def run_check_trigger(self, trigger_id: str) -> bool:
        """Check one trigger now. Returns False if the check failed."""
        async with Session(self.config) as session:
            trigger: Trigger | None = session.get_trigger(trigger_id)
            if trigger is None:
                self.renderer.print_error(f"Unknown trigger: {trigger_id}")
                return False

            scheduler = TriggerScheduler(
                session.trigger_executor,
                history_limit=self.config.trigger_settings.history_limit,
                context_messages=self.config.trigger_settings.context_messages,
            )
            result: TriggerResult | None = await scheduler.manual_check(
                trigger,
                SchedulerCallbacks(get_triggers=lambda: session.triggers),
            )
            if result is None:
                self.renderer.print_error(f"Trigger {trigger_id} is disabled")
                return False

            if result.result == TriggerOutcome.TRIGGERED:
                await self._fire(session, trigger, result)
            else:
                self.renderer.print_trigger_result(trigger, result)
            return result.result != TriggerOutcome.ERROR

    async def run_watch(self) -> None:
        """Run the trigger scheduler until interrupted."""
        async with Session(self.config) as session:
            if not session.triggers:
                self.renderer.print_error("No triggers configured")
                return

            self.renderer.print_triggers(session.triggers)
            scheduler = TriggerScheduler(
                session.trigger_executor,
                check_interval_seconds=self.config.trigger_settings.check_interval_seconds,
                history_limit=self.config.trigger_settings.history_limit,
                context_messages=self.config.trigger_settings.context_messages,
            )

            async def on_fired(trigger: Trigger, result: TriggerResult) -> None:
                await self._fire(session, trigger, result)

            scheduler.start(
                SchedulerCallbacks(
                    get_triggers=lambda: session.triggers,
                    on_trigger_fired=on_fired,
                    on_trigger_skipped=self.renderer.print_trigger_result,
                    on_trigger_checking=lambda trigger_id: console.print(f"[muted]checking {trigger_id}…[/muted]"),
                    on_error=lambda trigger, error: self.renderer.print_error(f"{trigger.display_name}: {error}"),
                )
            )
            console.print("[info]Watching triggers. Press Ctrl+C to stop.[/info]")
            try:
                await asyncio.Event().wait()
            finally:
                await scheduler.stop()
                await scheduler.wait_for_checks()


def _load_config(cwd: Path | None) -> Configuration:
    try:
        return load_configuration(cwd=cwd)
    except ConfigurationError as e:
        console.print(f"[error]Configuration Error: {e}[/error]")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Failed to load configuration: {e}")
        console.print(f"[error]Configuration Error: {e}[/error]")
        sys.exit(1)


@click.group()
@click.option(
    "--cwd",
    "-c",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project directory holding .orchestra/config.toml",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, cwd: Path | None, debug: bool) -> None:
    """
    Orchestra - multi-provider LLM runtime.

    Chat with any configured model, compare models, run a council, or
    watch background triggers.
    """
    load_dotenv()
    config: Configuration = _load_config(cwd)
    logging.basicConfig(
        level=logging.DEBUG if debug or config.debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ctx.obj = CLI(config)


@main.command()
@click.argument("prompt", required=False)
@click.option("--model", "-m", help="Model key, e.g. anthropic/claude-sonnet-4-5-20250929")
@click.pass_obj
def chat(cli: CLI, prompt: str | None, model: str | None) -> None:
    """Chat with a model. Answers PROMPT and exits when given."""
    if prompt:
        if asyncio.run(cli.run_single(prompt, model)) is None:
            sys.exit(1)
    else:
        asyncio.run(cli.run_interactive(model))


@main.command()
@click.argument("prompt")
@click.option("--model", "-m", "models", multiple=True, required=True, help="Model key (repeatable)")
@click.pass_obj
def compare(cli: CLI, prompt: str, models: tuple[str, ...]) -> None:
    """Send PROMPT to several models and show the answers side by side."""
    if not asyncio.run(cli.run_compare(prompt, list(models))):
        sys.exit(1)


@main.command()
@click.argument("prompt")
@click.option("--member", "-m", "members", multiple=True, required=True, help="Council member model key (repeatable)")
@click.option("--chairman", required=True, help="Model key that synthesizes the answers")
@click.pass_obj
def council(cli: CLI, prompt: str, members: tuple[str, ...], chairman: str) -> None:
    """Ask several models, then have a chairman synthesize one answer."""
    if not asyncio.run(cli.run_council(prompt, list(members), chairman)):
        sys.exit(1)


@main.command("check-trigger")
@click.argument("trigger_id")
@click.pass_obj
def check_trigger(cli: CLI, trigger_id: str) -> None:
    """Evaluate the trigger TRIGGER_ID once, now."""
    if not asyncio.run(cli.run_check_trigger(trigger_id)):
        sys.exit(1)


@main.command()
@click.pass_obj
def watch(cli: CLI) -> None:
    """Check configured triggers on their intervals until interrupted."""
    try:
        asyncio.run(cli.run_watch())
    except KeyboardInterrupt:
        console.print("\n[muted]Stopped watching[/muted]")


if __name__ == "__main__":
    main()
