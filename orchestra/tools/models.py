"""
Data models for the tools system.

This module defines the vendor-neutral Pydantic models exchanged between
providers, the tool executor and the tool registry: tool definitions,
tool calls requested by a model, and the results returned for them.
"""

from typing import Any

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """
    A tool offered to a model.

    Parameters
    ----------
    name : str
        Tool name the model uses to call it.
    description : str
        Description shown to the model.
    input_schema : dict[str, Any]
        JSON schema object describing the tool's input.

    Examples
    --------
    >>> ToolDefinition(
    ...     name="http_get",
    ...     description="Fetch a URL",
    ...     input_schema={"type": "object", "properties": {"url": {"type": "string"}}},
    ... )
    """

    name: str = Field(description="Tool name")
    description: str = Field(default="", description="Tool description")
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema for the input",
    )


class ToolCall(BaseModel):
    """
    A tool call requested by a model.

    Parameters
    ----------
    id : str
        Identifier correlating the call with its result.
    name : str
        Name of the tool to call.
    input : dict[str, Any], default={}
        Parsed arguments.
    provider_data : dict[str, Any], default={}
        Vendor-specific fields echoed back on replay, such as Gemini
        thought signatures.
    """

    id: str = Field(description="Tool call identifier")
    name: str = Field(description="Tool name")
    input: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")
    provider_data: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """
    Result of a tool execution.

    Parameters
    ----------
    tool_use_id : str
        Identifier of the call this result answers.
    content : str
        Text returned to the model.
    is_error : bool, default=False
        Whether the tool failed.

    Examples
    --------
    >>> result = ToolResult.success_result("call_1", "200 OK")
    >>> result = ToolResult.error_result("call_1", "Unknown tool: foo")
    """

    tool_use_id: str = Field(description="Tool call identifier")
    content: str = Field(default="", description="Tool output")
    is_error: bool = Field(default=False, description="Whether execution failed")

    @classmethod
    def success_result(cls, tool_use_id: str, content: str) -> "ToolResult":
        """
        Create a success result.

        Parameters
        ----------
        tool_use_id : str
            Identifier of the answered call.
        content : str
            Output text.

        Returns
        -------
        ToolResult
            Success result instance.
        """
        return cls(tool_use_id=tool_use_id, content=content, is_error=False)

    @classmethod
    def error_result(cls, tool_use_id: str, error: str) -> "ToolResult":
        """
        Create an error result.

        Parameters
        ----------
        tool_use_id : str
            Identifier of the answered call.
        error : str
            Error message returned to the model.

        Returns
        -------
        ToolResult
            Error result instance.
        """
        return cls(tool_use_id=tool_use_id, content=error, is_error=True)
