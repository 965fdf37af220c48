"""
Tool registry for managing and invoking tools.

This module keeps the tools offered to models and executes tool calls.
Execution never raises: unknown tools, invalid parameters and tool failures
all come back as error results so the agent loop can continue.
"""

import logging

from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


class ToolRegistry:
    """
    Registry of tools keyed by name.

    Examples
    --------
    >>> registry = ToolRegistry()
    >>> registry.register(HttpGetTool(secret_store))
    >>> result = await registry.execute_tool(ToolCall(id="1", name="http_get", input={"url": "..."}))
    """

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """
        Register a tool, replacing any tool with the same name.

        Parameters
        ----------
        tool : Tool
            Tool instance to register.
        """
        if tool.name in self._tools:
            logger.warning(f"Overwriting existing tool: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def get(self, name: str) -> Tool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_tools(self) -> list[Tool]:
        """Get all registered tools in registration order."""
        return list(self._tools.values())

    def definitions(self) -> list[ToolDefinition]:
        """Get the definitions of every registered tool."""
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute_tool(self, call: ToolCall) -> ToolResult:
        """
        Execute a tool call.

        Parameters
        ----------
        call : ToolCall
            The model's tool call.

        Returns
        -------
        ToolResult
            Result for ``call.id``; ``is_error`` is set for unknown tools,
            invalid parameters and exceptions raised by the tool.
        """
        tool = self.get(call.name)
        if tool is None:
            return ToolResult.error_result(call.id, f"Unknown tool: {call.name}")

        validation_errors: list[str] = tool.validate_params(call.input)
        if validation_errors:
            return ToolResult.error_result(
                call.id,
                f"Invalid parameters: {'; '.join(validation_errors)}",
            )

        try:
            result: ToolResult = await tool.execute(
                ToolInvocation(call_id=call.id, params=call.input)
            )
        except Exception as e:
            logger.exception(f"Tool {call.name} raised unexpected error")
            return ToolResult.error_result(call.id, f"Internal error: {e}")

        logger.debug(f"Tool {call.name} finished (error={result.is_error})")
        return result
