"""
Configuration schema definitions for the Orchestra runtime.

This module defines the Pydantic models for configuration validation,
including provider credentials, context budgets, tool executor limits,
trigger scheduling, retry behaviour, skills and configured triggers.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from orchestra.constants import (
    DEFAULT_BASELINE_MAX_TOKENS,
    DEFAULT_CHECK_INTERVAL_SECONDS,
    DEFAULT_HISTORY_LIMIT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_RESPONSE_RESERVE,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_TOOL_RESULT_MAX_TOKENS,
    DEFAULT_TOTAL_BUDGET,
    DEFAULT_TRIGGER_CONTEXT_MESSAGES,
    DEFAULT_TRIGGER_MAX_ITERATIONS,
)
from orchestra.exceptions import ValidationError

PROVIDER_ENV_VARS: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "grok": "XAI_API_KEY",
}

DEFAULT_OLLAMA_URL: str = "http://localhost:11434"


class ProviderSettings(BaseModel):
    """
    Credentials for every supported provider.

    Values given in configuration files win; otherwise the matching
    environment variable is used. Ollama needs no key, only a base URL, and
    is enabled explicitly.

    Parameters
    ----------
    anthropic_api_key : str | None, optional
        Anthropic API key (``ANTHROPIC_API_KEY``).
    openai_api_key : str | None, optional
        OpenAI API key (``OPENAI_API_KEY``).
    gemini_api_key : str | None, optional
        Google Gemini API key (``GEMINI_API_KEY``).
    grok_api_key : str | None, optional
        xAI API key (``XAI_API_KEY``).
    ollama_enabled : bool, default=False
        Whether the local Ollama server should be used.
    ollama_base_url : str | None, optional
        Base URL of the Ollama server (``OLLAMA_BASE_URL``).
    """

    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    gemini_api_key: str | None = Field(default=None, description="Gemini API key")
    grok_api_key: str | None = Field(default=None, description="xAI API key")
    ollama_enabled: bool = Field(default=False, description="Use local Ollama server")
    ollama_base_url: str | None = Field(default=None, description="Ollama base URL")

    def credential_for(self, provider_type: str) -> str | None:
        """
        Resolve the credential for a provider type.

        Parameters
        ----------
        provider_type : str
            One of ``anthropic``, ``openai``, ``gemini``, ``grok`` or ``ollama``.

        Returns
        -------
        str | None
            The API key (or Ollama base URL), or None when not configured.

        Examples
        --------
        >>> ProviderSettings(openai_api_key="sk-x").credential_for("openai")
        'sk-x'
        """
        if provider_type == "ollama":
            if not self.ollama_enabled and not os.environ.get("OLLAMA_BASE_URL"):
                return None
            return (
                self.ollama_base_url
                or os.environ.get("OLLAMA_BASE_URL")
                or DEFAULT_OLLAMA_URL
            )

        configured: str | None = getattr(self, f"{provider_type}_api_key", None)
        if configured:
            return configured
        env_var: str | None = PROVIDER_ENV_VARS.get(provider_type)
        return os.environ.get(env_var) if env_var else None


class ContextSettings(BaseModel):
    """
    Token budget settings for the context manager.

    Parameters
    ----------
    total_budget : int, default=16000
        Total tokens available for a request.
    response_reserve : int, default=4000
        Tokens reserved for the model's response.
    tool_result_max_tokens : int, default=500
        Ceiling for a single tool result before it is head/tail truncated.
    """

    total_budget: int = Field(default=DEFAULT_TOTAL_BUDGET, ge=1)
    response_reserve: int = Field(default=DEFAULT_RESPONSE_RESERVE, ge=0)
    tool_result_max_tokens: int = Field(default=DEFAULT_TOOL_RESULT_MAX_TOKENS, ge=1)

    @model_validator(mode="after")
    def validate_reserve(self) -> ContextSettings:
        """
        Validate that the response reserve fits inside the total budget.

        Returns
        -------
        ContextSettings
            The validated settings.

        Raises
        ------
        ValidationError
            If the reserve is not smaller than the total budget.
        """
        if self.response_reserve >= self.total_budget:
            raise ValidationError(
                "response_reserve must be smaller than total_budget",
                field="context.response_reserve",
            )
        return self


class ExecutorSettings(BaseModel):
    """Limits for the agentic tool loop."""

    max_iterations: int = Field(default=DEFAULT_MAX_ITERATIONS, ge=1)


class RetrySettings(BaseModel):
    """Retry behaviour for overloaded providers."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    base_delay: float = Field(default=DEFAULT_RETRY_BASE_DELAY, ge=0.0)


class TriggerSettings(BaseModel):
    """
    Settings for the trigger scheduler and executor.

    Parameters
    ----------
    check_interval_seconds : float, default=60.0
        Scheduler tick interval.
    max_iterations : int, default=5
        Tool loop iteration cap for trigger checks.
    history_limit : int, default=50
        Maximum number of attempts kept per trigger.
    baseline_max_tokens : int, default=2000
        Baseline content is truncated to this many tokens.
    context_messages : int, default=8
        Number of recent non-log messages passed to a check.
    """

    check_interval_seconds: float = Field(default=DEFAULT_CHECK_INTERVAL_SECONDS, gt=0)
    max_iterations: int = Field(default=DEFAULT_TRIGGER_MAX_ITERATIONS, ge=1)
    history_limit: int = Field(default=DEFAULT_HISTORY_LIMIT, ge=1)
    baseline_max_tokens: int = Field(default=DEFAULT_BASELINE_MAX_TOKENS, ge=1)
    context_messages: int = Field(default=DEFAULT_TRIGGER_CONTEXT_MESSAGES, ge=0)


class SkillDefinition(BaseModel):
    """
    A skill offered to the model through the ``use_skill`` tool.

    Parameters
    ----------
    name : str
        Unique skill name.
    description : str
        One-line description included in the system prompt.
    instructions : str
        Detailed instructions returned when the skill is invoked.
    """

    name: str = Field(..., min_length=1)
    description: str = ""
    instructions: str = ""


class TriggerConfig(BaseModel):
    """
    A trigger declared in configuration.

    Parameters
    ----------
    id : str
        Unique trigger identifier.
    model : str
        Model key in ``provider/model-id`` form.
    trigger_prompt : str
        Prompt evaluated on every check.
    main_prompt : str | None, optional
        Prompt run when the trigger fires.
    interval_minutes : float, default=60
        Minimum minutes between checks.
    enabled : bool, default=True
        Whether the scheduler checks this trigger.
    title : str | None, optional
        Display title.
    """

    id: str = Field(..., min_length=1)
    model: str
    trigger_prompt: str = Field(..., min_length=1)
    main_prompt: str | None = None
    interval_minutes: float = Field(default=60, gt=0)
    enabled: bool = True
    title: str | None = None

    @field_validator("model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        """
        Validate the model key has a provider prefix.

        Parameters
        ----------
        v : str
            Model key to validate.

        Returns
        -------
        str
            Validated model key.

        Raises
        ------
        ValidationError
            If the key has no ``/`` separator.
        """
        if "/" not in v:
            raise ValidationError(
                f'Invalid model format: "{v}". Expected "provider/model-id".',
                field="model",
            )
        return v


class Configuration(BaseModel):
    """
    Main configuration model for the Orchestra runtime.

    Parameters
    ----------
    providers : ProviderSettings, optional
        Provider credentials.
    default_model : str | None, optional
        Model key used when none is given.
    favorite_models : list[str], default=[]
        Models used by default for comparison and council runs.
    context : ContextSettings, optional
        Context budget settings.
    executor : ExecutorSettings, optional
        Tool loop limits.
    retry : RetrySettings, optional
        Overload retry settings.
    trigger_settings : TriggerSettings, optional
        Scheduler and trigger executor settings.
    secrets : dict[str, str], default={}
        Secret values resolved by HTTP tools.
    skills : list[SkillDefinition], default=[]
        Skills offered to the model.
    triggers : list[TriggerConfig], default=[]
        Triggers watched by the CLI.
    system_prompt : str | None, optional
        Base system prompt for chat sessions.
    debug : bool, default=False
        Enable debug logging.

    Examples
    --------
    >>> config = Configuration(default_model="anthropic/claude-sonnet-4-5-20250929")
    >>> config.context.total_budget
    16000
    """

    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    default_model: str | None = Field(default=None, description="Default model key")
    favorite_models: list[str] = Field(default_factory=list)
    context: ContextSettings = Field(default_factory=ContextSettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    trigger_settings: TriggerSettings = Field(default_factory=TriggerSettings)
    secrets: dict[str, str] = Field(default_factory=dict)
    skills: list[SkillDefinition] = Field(default_factory=list)
    triggers: list[TriggerConfig] = Field(default_factory=list)
    system_prompt: str | None = None
    debug: bool = False

    @model_validator(mode="after")
    def validate_unique_triggers(self) -> Configuration:
        """
        Validate that trigger ids are unique.

        Returns
        -------
        Configuration
            The validated configuration.

        Raises
        ------
        ValidationError
            If two triggers share an id.
        """
        seen: set[str] = set()
        for trigger in self.triggers:
            if trigger.id in seen:
                raise ValidationError(
                    f"Duplicate trigger id: {trigger.id}",
                    field="triggers",
                )
            seen.add(trigger.id)
        return self

    def validate_settings(self) -> list[str]:
        """
        Validate the configuration and return any errors.

        Returns
        -------
        list[str]
            List of error messages. Empty list if configuration is valid.
        """
        errors: list[str] = []

        if self.default_model and "/" not in self.default_model:
            errors.append(
                f'Invalid default_model "{self.default_model}". '
                'Expected "provider/model-id".'
            )

        for model in self.favorite_models:
            if "/" not in model:
                errors.append(f'Invalid favorite model "{model}"')

        return errors

    def to_dict(self) -> dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns
        -------
        dict[str, Any]
            Dictionary representation of the configuration.
        """
        return self.model_dump(mode="json")
