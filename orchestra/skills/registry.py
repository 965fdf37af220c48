"""
In-memory skill registry.

Skills are named instruction sets. Only their names and descriptions are
placed in the system prompt; the model fetches full instructions on demand
through the ``use_skill`` tool.
"""

import logging

from orchestra.config.schema import SkillDefinition
from orchestra.constants import USE_SKILL_TOOL_NAME

logger = logging.getLogger(__name__)

SKILLS_PROMPT_HEADER: str = (
    "# Available Skills\n\n"
    "You have access to the following skills. To use a skill, call the "
    f"`{USE_SKILL_TOOL_NAME}` tool with the skill name. The tool will return "
    "detailed instructions that you should follow to complete the task.\n\n"
)


class SkillRegistry:
    """
    Registry of skills keyed by name.

    Parameters
    ----------
    skills : list[SkillDefinition] | None, optional
        Initial skills.

    Examples
    --------
    >>> registry = SkillRegistry([SkillDefinition(name="summarize", description="Summarize text")])
    >>> print(registry.build_system_prompt())
    # Available Skills
    ...
    """

    def __init__(self, skills: list[SkillDefinition] | None = None) -> None:
        self._skills: dict[str, SkillDefinition] = {}
        for skill in skills or []:
            self.register(skill)

    def register(self, skill: SkillDefinition) -> None:
        """Register or replace a skill."""
        self._skills[skill.name] = skill
        logger.debug(f"Registered skill: {skill.name}")

    def get_skills(self) -> list[SkillDefinition]:
        """Return every registered skill."""
        return list(self._skills.values())

    def get_skill(self, name: str) -> SkillDefinition | None:
        """Return a skill by name."""
        return self._skills.get(name)

    def get_instructions(self, name: str) -> str | None:
        """Return a skill's full instructions, or None if unknown."""
        skill = self._skills.get(name)
        return skill.instructions if skill else None

    def build_system_prompt(self) -> str:
        """
        Build the system prompt fragment listing available skills.

        Returns
        -------
        str
            The fragment, or an empty string when no skills are registered.
        """
        if not self._skills:
            return ""
        lines: list[str] = [
            f"- **{skill.name}**: {skill.description}" for skill in self._skills.values()
        ]
        return SKILLS_PROMPT_HEADER + "\n".join(lines) + "\n"
