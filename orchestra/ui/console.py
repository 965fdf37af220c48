"""
Console factory for creating rich console instances.
"""

from rich.console import Console

from orchestra.ui.theme import ORCHESTRA_THEME

# Singleton console instance
_console: Console | None = None


def get_console() -> Console:
    """
    Get the shared rich Console configured with the Orchestra theme.

    Returns
    -------
    Console
        Configured console instance.

    Examples
    --------
    >>> console = get_console()
    >>> console.print("[highlight]Orchestra[/highlight]")
    """
    global _console
    if _console is None:
        _console = Console(theme=ORCHESTRA_THEME, highlight=False)
    return _console
