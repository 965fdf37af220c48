from pathlib import Path

import pytest

from orchestra.config.loader import load_configuration
from orchestra.config.schema import ContextSettings, ProviderSettings
from orchestra.exceptions import ConfigurationError, ValidationError
from orchestra.session import Session


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_project_config_overrides_system_config(tmp_path):
    system = _write(
        tmp_path / "system" / "config.toml",
        """
default_model = "openai/gpt-4o"

[context]
total_budget = 32000

[secrets]
SERPER_API_KEY = "system-key"
""",
    )
    project = tmp_path / "project"
    _write(
        project / ".orchestra" / "config.toml",
        """
default_model = "anthropic/claude-sonnet-4-5-20250929"

[context]
response_reserve = 2000

[[triggers]]
id = "price"
model = "openai/gpt-4o-mini"
trigger_prompt = "Has the price dropped?"
interval_minutes = 15
""",
    )

    config = load_configuration(cwd=project, system_path=system)

    assert config.default_model == "anthropic/claude-sonnet-4-5-20250929"
    assert config.context.total_budget == 32000
    assert config.context.response_reserve == 2000
    assert config.secrets == {"SERPER_API_KEY": "system-key"}
    assert config.triggers[0].interval_minutes == 15
    assert config.trigger_settings.check_interval_seconds == 60.0


def test_defaults_without_config_files(tmp_path):
    config = load_configuration(cwd=tmp_path, system_path=tmp_path / "missing.toml")

    assert config.context.total_budget == 16000
    assert config.context.response_reserve == 4000
    assert config.executor.max_iterations == 10
    assert config.trigger_settings.max_iterations == 5
    assert config.retry.max_attempts == 3


def test_invalid_project_toml_raises(tmp_path):
    _write(tmp_path / ".orchestra" / "config.toml", "default_model = ")

    with pytest.raises(ConfigurationError, match="Invalid TOML"):
        load_configuration(cwd=tmp_path, system_path=tmp_path / "missing.toml")


def test_invalid_system_toml_is_skipped(tmp_path):
    system = _write(tmp_path / "config.toml", "[[[")

    config = load_configuration(cwd=tmp_path, system_path=system)

    assert config.default_model is None


def test_duplicate_trigger_ids_are_rejected(tmp_path):
    _write(
        tmp_path / ".orchestra" / "config.toml",
        """
[[triggers]]
id = "a"
model = "openai/gpt-4o"
trigger_prompt = "one"

[[triggers]]
id = "a"
model = "openai/gpt-4o"
trigger_prompt = "two"
""",
    )

    with pytest.raises(ConfigurationError, match="Duplicate trigger id"):
        load_configuration(cwd=tmp_path, system_path=tmp_path / "missing.toml")


def test_malformed_default_model_is_rejected(tmp_path):
    _write(tmp_path / ".orchestra" / "config.toml", 'default_model = "gpt-4o"')

    with pytest.raises(ConfigurationError, match="Invalid default_model"):
        load_configuration(cwd=tmp_path, system_path=tmp_path / "missing.toml")


def test_response_reserve_must_fit_budget():
    with pytest.raises(ValidationError):
        ContextSettings(total_budget=1000, response_reserve=1000)


def test_provider_credentials_prefer_config_then_environment(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)

    settings = ProviderSettings(openai_api_key="sk-config")

    assert settings.credential_for("openai") == "sk-config"
    assert ProviderSettings().credential_for("openai") == "sk-env"
    assert ProviderSettings().credential_for("ollama") is None
    assert ProviderSettings(ollama_enabled=True).credential_for("ollama") == "http://localhost:11434"


@pytest.mark.asyncio
async def test_session_wires_triggers_and_skills(tmp_path):
    _write(
        tmp_path / ".orchestra" / "config.toml",
        """
system_prompt = "Be brief."

[[skills]]
name = "weather"
description = "Forecasts"
instructions = "Call the API"

[[triggers]]
id = "price"
model = "openai/gpt-4o-mini"
trigger_prompt = "Has the price dropped?"
""",
    )
    config = load_configuration(cwd=tmp_path, system_path=tmp_path / "missing.toml")

    session = Session(config)

    assert session.get_trigger("price").interval_minutes == 60
    assert session.get_trigger("missing") is None
    assert session.tool_registry.get("use_skill") is not None
    assert session.system_prompt.endswith("Be brief.")
    assert "weather" in session.system_prompt
    await session.close()


def test_project_triggers_merge_by_id(tmp_path):
    system = _write(
        tmp_path / "config.toml",
        """
[[triggers]]
id = "price"
model = "openai/gpt-4o"
trigger_prompt = "Old prompt"

[[triggers]]
id = "news"
model = "openai/gpt-4o"
trigger_prompt = "Any news?"
""",
    )
    project = tmp_path / "project"
    _write(
        project / ".orchestra" / "config.toml",
        """
[[triggers]]
id = "price"
model = "openai/gpt-4o-mini"
trigger_prompt = "New prompt"

[[triggers]]
id = "weather"
model = "openai/gpt-4o-mini"
trigger_prompt = "Will it rain?"
""",
    )

    config = load_configuration(cwd=project, system_path=system)

    assert [t.id for t in config.triggers] == ["price", "news", "weather"]
    assert config.triggers[0].trigger_prompt == "New prompt"


def test_project_config_found_from_subdirectory(tmp_path):
    _write(tmp_path / ".orchestra" / "config.toml", 'default_model = "openai/gpt-4o"')
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)

    config = load_configuration(cwd=nested, system_path=tmp_path / "missing.toml")

    assert config.default_model == "openai/gpt-4o"
