"""
Agentic tool-execution loop for Orchestra.

This package provides the executor that runs a provider turn with tools
until the model stops requesting them.
"""
