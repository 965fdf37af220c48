"""
Orchestra theme definition for rich console styling.

Colors are chosen for dark terminals.
"""

from rich.theme import Theme

ORCHESTRA_THEME = Theme(
    {
        # General styles
        "info": "cyan",
        "warning": "yellow",
        "error": "bright_red bold",
        "success": "green",
        "dim": "dim",
        "muted": "grey50",
        "border": "grey35",
        "highlight": "bold cyan",
        # Role styles
        "user": "bright_blue bold",
        "assistant": "bright_white",
        "model": "bright_cyan bold",
        "chairman": "bright_yellow bold",
        # Tool styles
        "tool": "bright_magenta bold",
        "tool.error": "red",
        "skill": "green bold",
        # Trigger styles
        "trigger.fired": "bright_green bold",
        "trigger.skipped": "grey50",
        "trigger.error": "bright_red",
    },
)
