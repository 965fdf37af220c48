"""
Provider adapters for the supported LLM vendors.

Each adapter implements ``ProviderAdapter``; adapters that can replay tool
rounds implement ``ToolCapableProvider``.
"""

from orchestra.llm.providers.base import ProviderAdapter, ToolCapableProvider
from orchestra.llm.providers.registry import ProviderRegistry, parse_model_string

__all__ = [
    "ProviderAdapter",
    "ProviderRegistry",
    "ToolCapableProvider",
    "parse_model_string",
]
