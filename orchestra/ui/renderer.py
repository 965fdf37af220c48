"""
Rendering of chat, fan-out and trigger output for the CLI.
"""

import json
import logging

from rich import box
from rich.console import Console, Group
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from orchestra.constants import CHAIRMAN_KEY
from orchestra.fanout.models import ComparisonResponse, CouncilResult, ResponseStatus
from orchestra.llm.models import SkillUse, ToolUse
from orchestra.triggers.models import Trigger, TriggerOutcome, TriggerResult

logger = logging.getLogger(__name__)

# Characters of tool output shown under a tool use
MAX_TOOL_PREVIEW: int = 300


class Renderer:
    """
    Prints Orchestra output to a rich console.

    Parameters
    ----------
    console : Console
        Console to print to.

    Examples
    --------
    >>> renderer = Renderer(get_console())
    >>> renderer.print_welcome("Orchestra", ["model: openai/gpt-4o"])
    """

    def __init__(self, console: Console) -> None:
        self.console: Console = console
        self._stream_open: bool = False

    def print_welcome(self, title: str, lines: list[str] | None = None) -> None:
        """Print a title panel with information lines."""
        body: str = "\n".join(lines) if lines else ""
        self.console.print(
            Panel(
                Text(body),
                title=Text(title, style="highlight"),
                title_align="left",
                border_style="border",
                box=box.ROUNDED,
                padding=(1, 2),
            ),
        )

    def begin_assistant(self, label: str) -> None:
        """Open a streamed response section."""
        self.console.print()
        self.console.print(Rule(Text(label, style="assistant")))
        self._stream_open = True

    def stream_delta(self, text: str) -> None:
        """Print a streamed text delta."""
        self.console.print(text, end="", markup=False)

    def end_assistant(self) -> None:
        """Close a streamed response section."""
        if self._stream_open:
            self.console.print()
        self._stream_open = False

    def print_tool_start(self, tool_use: ToolUse, label: str | None = None) -> None:
        """Print a one-line notice that a tool call started."""
        prefix: str = f"[model]{label}[/model] " if label else ""
        self.console.print(f"\n{prefix}[tool]⏺ {tool_use.name}[/tool]")

    def print_tool_uses(self, tool_uses: list[ToolUse]) -> None:
        """Print completed tool uses with their arguments and result previews."""
        for tool_use in tool_uses:
            style: str = "tool.error" if tool_use.is_error else "tool"
            arguments: str = json.dumps(tool_use.input or {}, ensure_ascii=False)
            lines: list[Text] = [Text(arguments, style="muted")]
            if tool_use.result:
                preview: str = tool_use.result[:MAX_TOOL_PREVIEW]
                if len(tool_use.result) > MAX_TOOL_PREVIEW:
                    preview += "…"
                lines.append(Text(preview, style="dim"))
            self.console.print(
                Panel(
                    Group(*lines),
                    title=Text(tool_use.name, style=style),
                    title_align="left",
                    border_style="border",
                    box=box.ROUNDED,
                ),
            )

    def print_skill_uses(self, skill_uses: list[SkillUse]) -> None:
        """Print the skills a model used."""
        if skill_uses:
            names: str = ", ".join(skill.name for skill in skill_uses)
            self.console.print(f"[skill]Skills used:[/skill] {names}")

    def print_comparison(self, responses: list[ComparisonResponse]) -> None:
        """Print each model's response in its own panel."""
        for response in responses:
            self.console.print(self._response_panel(response, response.label, "model"))

    def print_council(self, result: CouncilResult) -> None:
        """Print member responses followed by the chairman's synthesis."""
        self.print_comparison(result.member_responses)
        self.console.print(
            self._response_panel(
                result.chairman_response,
                f"{CHAIRMAN_KEY}: {result.chairman_response.label}",
                "chairman",
            )
        )

    def _response_panel(self, response: ComparisonResponse, title: str, style: str) -> Panel:
        if response.status == ResponseStatus.ERROR:
            body = Text(response.error or "Unknown error", style="error")
        elif not response.content:
            body = Text("(stopped)", style="muted")
        else:
            body = Markdown(response.content)
        return Panel(
            body,
            title=Text(title, style=style),
            title_align="left",
            subtitle=Text(response.status.value, style="muted"),
            border_style="border",
            box=box.ROUNDED,
        )

    def print_trigger_result(self, trigger: Trigger, result: TriggerResult) -> None:
        """Print the outcome of a trigger check."""
        if result.result == TriggerOutcome.TRIGGERED:
            self.console.print(
                Panel(
                    Markdown(result.response),
                    title=Text(f"{trigger.display_name} fired", style="trigger.fired"),
                    title_align="left",
                    border_style="border",
                    box=box.ROUNDED,
                )
            )
        elif result.result == TriggerOutcome.SKIPPED:
            self.console.print(f"[trigger.skipped]{trigger.display_name}: {result.response}[/trigger.skipped]")
        else:
            self.console.print(f"[trigger.error]{trigger.display_name}: {result.error}[/trigger.error]")

    def print_triggers(self, triggers: list[Trigger]) -> None:
        """Print a table of triggers and their state."""
        table = Table(box=box.SIMPLE, header_style="highlight")
        table.add_column("id")
        table.add_column("model")
        table.add_column("every")
        table.add_column("last checked", style="muted")
        table.add_column("last triggered", style="muted")
        for trigger in triggers:
            table.add_row(
                trigger.id if trigger.enabled else f"{trigger.id} (disabled)",
                trigger.model,
                f"{trigger.interval_minutes:g}m",
                trigger.last_checked.strftime("%H:%M:%S") if trigger.last_checked else "-",
                trigger.last_triggered.strftime("%H:%M:%S") if trigger.last_triggered else "-",
            )
        self.console.print(table)

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[error]{message}[/error]")


class FanOutProgress:
    """
    Fan-out listener that reports progress on the console.

    Member text is not streamed, since several models write at once; status
    changes and tool calls are printed as they happen. The chairman's text
    is streamed live.
    """

    def __init__(self, renderer: Renderer) -> None:
        self.renderer: Renderer = renderer

    def on_status(self, model: str, status: str) -> None:
        if model == CHAIRMAN_KEY and status == ResponseStatus.STREAMING:
            self.renderer.begin_assistant("synthesis")
            return
        if model == CHAIRMAN_KEY and status in (ResponseStatus.COMPLETE, ResponseStatus.ERROR):
            self.renderer.end_assistant()
        self.renderer.console.print(f"[muted]{model}: {status.value if isinstance(status, ResponseStatus) else status}[/muted]")

    def on_chunk(self, model: str, text: str) -> None:
        if model == CHAIRMAN_KEY:
            self.renderer.stream_delta(text)

    def on_tool_use(self, model: str, tool_use: ToolUse) -> None:
        self.renderer.print_tool_start(tool_use, model)
