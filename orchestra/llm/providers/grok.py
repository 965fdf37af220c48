"""
xAI Grok provider adapter.

Grok serves an OpenAI-compatible chat-completions API, so the adapter reuses
the OpenAI streaming implementation against the xAI endpoint.
"""

from orchestra.llm.providers.openai import OpenAIProvider

GROK_BASE_URL: str = "https://api.x.ai/v1"

GROK_MODELS: list[tuple[str, str]] = [
    ("grok-4-1-fast", "Grok 4.1 Fast"),
    ("grok-4-0709", "Grok 4"),
]


class GrokProvider(OpenAIProvider):
    """Adapter for xAI Grok models."""

    provider_type: str = "grok"
    display_name: str = "Grok"
    title_model: str | None = "grok-4-1-fast-non-reasoning"
    base_url: str | None = GROK_BASE_URL
    models: list[tuple[str, str]] = GROK_MODELS
