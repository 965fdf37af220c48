"""
Core package for the Orchestra multi-provider LLM runtime.

This package provides provider adapters for several LLM vendors, a
token-budget context manager, an agentic tool-execution loop, a trigger
scheduler for unattended monitoring prompts, and fan-out orchestrators for
model comparison and council synthesis.
"""

__version__ = "0.1.0"
