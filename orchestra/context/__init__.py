"""
Token-budget context management for Orchestra.

This package estimates token usage and selects which conversation messages
fit into a provider request.
"""
