"""
Terminal output for the Orchestra CLI.
"""
