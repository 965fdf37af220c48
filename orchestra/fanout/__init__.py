"""
Multi-model fan-out for Orchestra.

This package runs one request against several models concurrently, either
side by side (comparison) or followed by a chairman synthesis (council).
"""
