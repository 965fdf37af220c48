"""
Configuration management for the Orchestra runtime.

This package provides the configuration schema and the TOML loader that
merges system-wide and project-level settings.
"""
