"""Console styling for the solkit CLI."""

from __future__ import annotations

from rich.console import Console
from rich.theme import Theme

SOLKIT_THEME = Theme(
    {
        "solkit.header": "bold #9945FF",
        "solkit.key": "#94A3B8",
        "solkit.value": "#E6FFFA",
        "solkit.success": "bold #14F195",
        "solkit.warning": "bold #FBBF24",
        "solkit.error": "bold #FB7185",
        "solkit.dim": "dim #64748B",
    }
)


def themed_console(**kwargs: object) -> Console:
    """Return a Console configured with the solkit theme."""
    return Console(theme=SOLKIT_THEME, **kwargs)


__all__ = ["SOLKIT_THEME", "themed_console"]
