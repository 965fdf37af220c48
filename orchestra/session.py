"""
Runtime session wiring.

A session builds every collaborator from a configuration: the provider
registry, secrets, skills, tools, context manager, tool executor and
trigger executor. Nothing is global; each session owns its own instances.
"""

import logging
import uuid
from datetime import datetime

from orchestra.agent.executor import ToolExecutor, build_system_prompt_with_skills
from orchestra.config.schema import Configuration
from orchestra.context.manager import ContextManager
from orchestra.exceptions import ConfigurationError
from orchestra.llm.models import ModelInfo
from orchestra.llm.providers.registry import ProviderRegistry, parse_model_string
from orchestra.skills.registry import SkillRegistry
from orchestra.tools.builtin import create_default_registry
from orchestra.tools.registry import ToolRegistry
from orchestra.tools.secrets import SecretStore
from orchestra.triggers.executor import TriggerExecutor
from orchestra.triggers.models import Trigger

logger = logging.getLogger(__name__)


class Session:
    """
    Collaborators for one CLI or embedding session.

    Parameters
    ----------
    config : Configuration
        Loaded configuration.
    providers : ProviderRegistry | None, optional
        Provider registry; one with the built-in vendors by default.
    tool_registry : ToolRegistry | None, optional
        Tool registry; the builtin tools by default.

    Attributes
    ----------
    session_id : str
        Unique session identifier.
    triggers : list[Trigger]
        Triggers built from the configuration.

    Examples
    --------
    >>> async with Session(config) as session:
    ...     result = await session.tool_executor.execute(provider, messages, model_id)
    """

    def __init__(
        self,
        config: Configuration,
        providers: ProviderRegistry | None = None,
        tool_registry: ToolRegistry | None = None,
    ) -> None:
        self.config: Configuration = config
        self.providers: ProviderRegistry = providers or ProviderRegistry(retry_settings=config.retry)
        self.secrets: SecretStore = SecretStore(config.secrets)
        self.skills: SkillRegistry = SkillRegistry(config.skills)
        self.tool_registry: ToolRegistry = tool_registry or create_default_registry(
            self.secrets,
            self.skills,
        )
        self.context_manager: ContextManager = ContextManager(config.context)
        self.tool_executor: ToolExecutor = ToolExecutor(
            self.context_manager,
            self.tool_registry,
            default_max_iterations=config.executor.max_iterations,
        )
        self.trigger_executor: TriggerExecutor = TriggerExecutor(
            self.providers,
            self.tool_executor,
            skill_registry=self.skills,
            max_iterations=config.trigger_settings.max_iterations,
            baseline_max_tokens=config.trigger_settings.baseline_max_tokens,
            context_messages=config.trigger_settings.context_messages,
        )
        self.triggers: list[Trigger] = [Trigger.from_config(t) for t in config.triggers]
        self.session_id: str = str(uuid.uuid4())
        self.created_at: datetime = datetime.now()

    async def __aenter__(self) -> "Session":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Initialize providers from the configuration."""
        await self.providers.initialize_from_config(self.config)
        logger.info(f"Session {self.session_id} initialized")

    async def close(self) -> None:
        """Release provider network resources."""
        await self.providers.close()

    @property
    def system_prompt(self) -> str | None:
        """Configured system prompt with the skills fragment prepended."""
        return build_system_prompt_with_skills(self.skills, self.config.system_prompt) or None

    async def resolve_model(self, model: str | None) -> str:
        """
        Return the model key to use.

        Parameters
        ----------
        model : str | None
            Requested model key, or None for the default.

        Returns
        -------
        str
            Model key in ``provider/model-id`` form.

        Raises
        ------
        ConfigurationError
            If no model was given and no provider is enabled.
        """
        if model:
            return model
        default: str | None = await self.providers.default_model()
        if default is None:
            raise ConfigurationError(
                "No provider is configured. Set an API key such as ANTHROPIC_API_KEY "
                "or OPENAI_API_KEY, or enable Ollama."
            )
        return default

    async def model_info(self, key: str) -> ModelInfo:
        """
        Describe a model key, using the provider's display name when known.

        Raises
        ------
        InvalidModelStringError
            If the key is malformed.
        """
        provider_type, _ = parse_model_string(key)
        provider = self.providers.get_provider(provider_type)
        if provider is not None and provider.is_initialized():
            for info in await provider.get_available_models():
                if info.key == key:
                    return info
        return ModelInfo(key=key, name=key)

    def get_trigger(self, trigger_id: str) -> Trigger | None:
        """Return the trigger with the given id."""
        for trigger in self.triggers:
            if trigger.id == trigger_id:
                return trigger
        return None
