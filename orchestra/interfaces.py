"""
Protocol definitions for the collaborators the core depends on.

The tool executor, trigger executor and fan-out orchestrators only need
these narrow interfaces, so tests and embedding applications can supply
their own implementations.
"""

from typing import Protocol

from orchestra.llm.models import ToolUse
from orchestra.tools.models import ToolCall, ToolDefinition, ToolResult


class ToolRegistryProtocol(Protocol):
    """Executes tool calls and lists the tools offered to models."""

    def definitions(self) -> list[ToolDefinition]:
        """Return the definitions of every available tool."""
        ...

    async def execute_tool(self, call: ToolCall) -> ToolResult:
        """
        Execute a tool call.

        Implementations report failures as ``is_error`` results and do not
        raise.
        """
        ...


class SkillRegistryProtocol(Protocol):
    """Provides the skills prompt fragment."""

    def build_system_prompt(self) -> str:
        """Return the fragment describing available skills, or an empty string."""
        ...

    def get_instructions(self, name: str) -> str | None:
        """Return a skill's instructions, or None if unknown."""
        ...


class FanOutListenerProtocol(Protocol):
    """Receives per-model progress from the fan-out orchestrators."""

    def on_status(self, model: str, status: str) -> None:
        """Called when a model's status changes."""
        ...

    def on_chunk(self, model: str, text: str) -> None:
        """Called with each streamed text delta of a model."""
        ...

    def on_tool_use(self, model: str, tool_use: ToolUse) -> None:
        """Called when a model starts a tool call."""
        ...
