"""
Background triggers for Orchestra.

This package provides the trigger model, the verdict parser, the trigger
executor with baseline diffing and the interval scheduler.
"""
