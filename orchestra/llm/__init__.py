"""
LLM data model, retry strategy and provider adapters for Orchestra.

This package provides the vendor-neutral conversation model and the
adapters that normalize each vendor's chat API into it.
"""
