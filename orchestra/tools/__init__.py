"""
Tool system for Orchestra.

This package provides the tool data model, the ``Tool`` base class, the
tool registry and builtin tools.
"""
