"""
Data models for multi-model fan-out.
"""

from enum import Enum

from pydantic import BaseModel, Field

from orchestra.llm.models import SkillUse, ToolUse


class ResponseStatus(str, Enum):
    """Lifecycle of one model's response in a fan-out."""

    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"


class CouncilPhase(str, Enum):
    """Phases of a council run."""

    IDLE = "idle"
    INDIVIDUAL = "individual"
    SYNTHESIS = "synthesis"
    COMPLETE = "complete"


class ComparisonResponse(BaseModel):
    """
    Final state of one model's response.

    Parameters
    ----------
    model : str
        Model key in ``provider/model-id`` form.
    name : str | None, optional
        Display name of the model.
    content : str
        Response text. Empty for cancelled or failed models.
    status : ResponseStatus
        Terminal status, ``complete`` or ``error``.
    error : str | None, optional
        Error message when the model failed.
    tool_use : list[ToolUse], default=[]
        Tools the model used.
    skill_use : list[SkillUse], default=[]
        Skills the model used.
    """

    model: str
    name: str | None = None
    content: str = ""
    status: ResponseStatus = ResponseStatus.PENDING
    error: str | None = None
    tool_use: list[ToolUse] = Field(default_factory=list)
    skill_use: list[SkillUse] = Field(default_factory=list)

    @property
    def label(self) -> str:
        """Display name, or the model key when unnamed."""
        return self.name or self.model


class CouncilResult(BaseModel):
    """Member responses and the chairman's synthesis."""

    member_responses: list[ComparisonResponse] = Field(default_factory=list)
    chairman_response: ComparisonResponse
