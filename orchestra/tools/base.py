"""
Base tool class and abstract interface.

This module provides the abstract base class for tools callable by a model,
with Pydantic parameter validation and tool definition generation.
"""

import abc
from typing import Any

from pydantic import BaseModel, ValidationError

from orchestra.tools.models import ToolDefinition, ToolResult


class ToolInvocation(BaseModel):
    """
    An invocation of a tool.

    Parameters
    ----------
    call_id : str
        Identifier of the model's tool call.
    params : dict[str, Any]
        Arguments passed by the model.
    """

    call_id: str
    params: dict[str, Any]


class Tool(abc.ABC):
    """
    Abstract base class for all tools.

    Subclasses set ``name``, ``description`` and ``schema`` (a
    Pydantic model describing the parameters) and implement ``execute``.

    Examples
    --------
    >>> class EchoTool(Tool):
    ...     name = "echo"
    ...     description = "Echo the text back"
    ...     schema = EchoParams
    ...
    ...     async def execute(self, invocation: ToolInvocation) -> ToolResult:
    ...         return ToolResult.success_result(invocation.call_id, invocation.params["text"])
    """

    name: str = "base_tool"
    description: str = "Base tool"
    schema: type[BaseModel]

    @abc.abstractmethod
    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        """
        Execute the tool.

        Parameters
        ----------
        invocation : ToolInvocation
            Call id and validated parameters.

        Returns
        -------
        ToolResult
            Result for ``invocation.call_id``.
        """

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """
        Validate tool parameters against the schema.

        Parameters
        ----------
        params : dict[str, Any]
            Parameters to validate.

        Returns
        -------
        list[str]
            List of validation error messages. Empty list if valid.
        """
        try:
            self.schema(**params)
        except ValidationError as e:
            errors: list[str] = []
            for error in e.errors():
                field = ".".join(str(x) for x in error.get("loc", []))
                msg = error.get("msg", "Validation error")
                errors.append(f"Parameter '{field}': {msg}")
            return errors
        return []

    def to_definition(self) -> ToolDefinition:
        """
        Build the vendor-neutral definition offered to models.

        Returns
        -------
        ToolDefinition
            Name, description and a JSON schema object for the parameters.
        """
        json_schema: dict[str, Any] = self.schema.model_json_schema()
        input_schema: dict[str, Any] = {
            "type": "object",
            "properties": json_schema.get("properties", {}),
            "required": json_schema.get("required", []),
        }
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=input_schema,
        )
