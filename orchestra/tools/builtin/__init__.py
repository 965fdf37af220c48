"""
Builtin tools for Orchestra.

This package provides HTTP request tools with secret-token resolution, a
secret lookup tool, web search, and the skill tool.
"""

from orchestra.skills.registry import SkillRegistry
from orchestra.tools.builtin.http import HttpGetTool, HttpPostTool
from orchestra.tools.builtin.secrets import GetSecretTool
from orchestra.tools.builtin.skills import UseSkillTool
from orchestra.tools.builtin.web_search import WebSearchTool
from orchestra.tools.registry import ToolRegistry
from orchestra.tools.secrets import SecretStore

__all__ = [
    "GetSecretTool",
    "HttpGetTool",
    "HttpPostTool",
    "UseSkillTool",
    "WebSearchTool",
    "create_default_registry",
]


def create_default_registry(
    secrets: SecretStore,
    skills: SkillRegistry | None = None,
) -> ToolRegistry:
    """
    Build a registry with every builtin tool.

    ``use_skill`` is only registered when at least one skill exists.

    Parameters
    ----------
    secrets : SecretStore
        Secret values for the HTTP and secret tools.
    skills : SkillRegistry | None, optional
        Skills offered through ``use_skill``.

    Returns
    -------
    ToolRegistry
        Populated registry.

    Examples
    --------
    >>> registry = create_default_registry(SecretStore(config.secrets))
    >>> [tool.name for tool in registry.get_tools()]
    ['http_get', 'http_post', 'get_secret', 'web_search']
    """
    registry = ToolRegistry()
    registry.register(HttpGetTool(secrets))
    registry.register(HttpPostTool(secrets))
    registry.register(GetSecretTool(secrets))
    registry.register(WebSearchTool())
    if skills is not None and skills.get_skills():
        registry.register(UseSkillTool(skills))
    return registry
