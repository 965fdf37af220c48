"""
Skill tool.

``use_skill`` returns the full instructions of a registered skill.
"""

from pydantic import BaseModel, Field

from orchestra.constants import USE_SKILL_TOOL_NAME
from orchestra.skills.registry import SkillRegistry
from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolResult


class UseSkillParams(BaseModel):
    """Parameters for the use_skill tool."""

    name: str = Field(..., min_length=1, description="Name of the skill to use")


class UseSkillTool(Tool):
    """Tool returning a skill's detailed instructions."""

    name: str = USE_SKILL_TOOL_NAME
    description: str = (
        "Load the detailed instructions for one of the available skills. "
        "Follow the returned instructions to complete the task"
    )
    schema: type[UseSkillParams] = UseSkillParams

    def __init__(self, skills: SkillRegistry) -> None:
        self.skills: SkillRegistry = skills

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = UseSkillParams(**invocation.params)
        instructions: str | None = self.skills.get_instructions(params.name)
        if instructions is None:
            available: str = ", ".join(skill.name for skill in self.skills.get_skills())
            return ToolResult.error_result(
                invocation.call_id,
                f"Unknown skill: {params.name}. Available skills: {available}",
            )
        return ToolResult.success_result(
            invocation.call_id,
            f"# Skill: {params.name}\n\nFollow these instructions to complete the task:\n\n{instructions}",
        )
