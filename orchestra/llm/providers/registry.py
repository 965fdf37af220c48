"""
Provider registry.

This module holds one adapter per provider type, initializes them from
configuration, and resolves ``provider/model-id`` keys to an adapter and a
vendor model id. The registry is an ordinary object passed to whoever needs
it.
"""

import logging

from orchestra.config.schema import Configuration, RetrySettings
from orchestra.exceptions import InvalidModelStringError, ProviderNotInitializedError
from orchestra.llm.models import ModelInfo
from orchestra.llm.providers.anthropic import AnthropicProvider
from orchestra.llm.providers.base import ProviderAdapter
from orchestra.llm.providers.gemini import GeminiProvider
from orchestra.llm.providers.grok import GrokProvider
from orchestra.llm.providers.ollama import OllamaProvider
from orchestra.llm.providers.openai import OpenAIProvider
from orchestra.llm.retry import SleepFunction

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: tuple[type[ProviderAdapter], ...] = (
    AnthropicProvider,
    OpenAIProvider,
    OllamaProvider,
    GeminiProvider,
    GrokProvider,
)


def parse_model_string(model_string: str) -> tuple[str, str]:
    """
    Split a model key into provider type and vendor model id.

    Parameters
    ----------
    model_string : str
        Key in ``provider/model-id`` form. The model id may itself contain
        slashes.

    Returns
    -------
    tuple[str, str]
        ``(provider_type, model_id)``.

    Raises
    ------
    InvalidModelStringError
        If the key has no ``/`` or either side is empty.

    Examples
    --------
    >>> parse_model_string("anthropic/claude-sonnet-4-5-20250929")
    ('anthropic', 'claude-sonnet-4-5-20250929')
    """
    provider, sep, model_id = model_string.partition("/")
    if not sep or not provider or not model_id:
        raise InvalidModelStringError(model_string)
    return provider, model_id


class ProviderRegistry:
    """
    Registry of provider adapters keyed by provider type.

    Parameters
    ----------
    providers : list[ProviderAdapter] | None, optional
        Adapters to register. Defaults to one of each built-in vendor.
    retry_settings : RetrySettings | None, optional
        Retry settings for the built-in adapters.
    sleep : SleepFunction | None, optional
        Sleep function passed to built-in adapters.

    Examples
    --------
    >>> registry = ProviderRegistry()
    >>> await registry.initialize_from_config(config)
    >>> adapter, model_id = registry.resolve("openai/gpt-4o")
    """

    def __init__(
        self,
        providers: list[ProviderAdapter] | None = None,
        retry_settings: RetrySettings | None = None,
        sleep: SleepFunction | None = None,
    ) -> None:
        if providers is None:
            providers = [cls(retry_settings, sleep) for cls in PROVIDER_CLASSES]
        self._providers: dict[str, ProviderAdapter] = {p.provider_type: p for p in providers}
        self._default_model: str | None = None

    def register(self, provider: ProviderAdapter) -> None:
        """Register or replace the adapter for its provider type."""
        self._providers[provider.provider_type] = provider

    async def initialize_from_config(self, config: Configuration) -> None:
        """
        Initialize every adapter that has a credential.

        Ollama models are discovered after initialization; a server that
        cannot be reached leaves the provider enabled with no models.

        Parameters
        ----------
        config : Configuration
            Loaded configuration.
        """
        self._default_model = config.default_model
        for provider_type, provider in self._providers.items():
            credential: str | None = config.providers.credential_for(provider_type)
            if credential:
                provider.initialize(credential)

        ollama = self._providers.get("ollama")
        if isinstance(ollama, OllamaProvider) and ollama.is_initialized():
            await ollama.discover_models()

        logger.info(f"Enabled providers: {', '.join(self.enabled_provider_types()) or 'none'}")

    def get_provider(self, provider_type: str) -> ProviderAdapter | None:
        """Return the adapter for a provider type, if registered."""
        return self._providers.get(provider_type)

    def enabled_providers(self) -> list[ProviderAdapter]:
        """Return the initialized adapters in registration order."""
        return [p for p in self._providers.values() if p.is_initialized()]

    def enabled_provider_types(self) -> list[str]:
        """Return the provider types of initialized adapters."""
        return [p.provider_type for p in self.enabled_providers()]

    def has_any_provider(self) -> bool:
        """Whether at least one provider is initialized."""
        return bool(self.enabled_providers())

    async def all_available_models(self) -> list[ModelInfo]:
        """Return the models of every initialized provider."""
        models: list[ModelInfo] = []
        for provider in self.enabled_providers():
            models.extend(await provider.get_available_models())
        return models

    def _parsed_default(self) -> tuple[str, str] | None:
        if not self._default_model:
            return None
        try:
            return parse_model_string(self._default_model)
        except InvalidModelStringError:
            return None

    def default_provider(self) -> str | None:
        """
        Return the provider type used when no model is given.

        The configured default model's provider wins when enabled; otherwise
        anthropic, then openai, then the first enabled provider.
        """
        enabled: list[str] = self.enabled_provider_types()
        if not enabled:
            return None

        parsed = self._parsed_default()
        if parsed and parsed[0] in enabled:
            return parsed[0]

        for preferred in ("anthropic", "openai"):
            if preferred in enabled:
                return preferred
        return enabled[0]

    async def default_model(self) -> str | None:
        """
        Return the full model key used when no model is given.

        Returns
        -------
        str | None
            A ``provider/model-id`` key, or None when nothing is enabled.
        """
        provider_type: str | None = self.default_provider()
        if provider_type is None:
            return None

        parsed = self._parsed_default()
        if parsed and parsed[0] == provider_type:
            return f"{parsed[0]}/{parsed[1]}"

        models: list[ModelInfo] = await self._providers[provider_type].get_available_models()
        return models[0].key if models else None

    def resolve(self, model_string: str) -> tuple[ProviderAdapter, str]:
        """
        Resolve a model key to an initialized adapter and vendor model id.

        Parameters
        ----------
        model_string : str
            Key in ``provider/model-id`` form.

        Returns
        -------
        tuple[ProviderAdapter, str]
            The adapter and the model id to pass in ``ChatOptions``.

        Raises
        ------
        InvalidModelStringError
            If the key is malformed.
        ProviderNotInitializedError
            If the provider is unknown or has no credential.
        """
        provider_type, model_id = parse_model_string(model_string)
        provider = self._providers.get(provider_type)
        if provider is None or not provider.is_initialized():
            raise ProviderNotInitializedError(provider_type)
        return provider, model_id

    async def close(self) -> None:
        """Close every adapter."""
        for provider in self._providers.values():
            await provider.close()
