"""
Theme definitions for Fishbone-MCP.

Provides light and dark color palettes for rendering diagrams.
Each theme defines colors for:
- Canvas background and optional grid
- Spine and problem statement
- Category titles and the add-cause affordance
- Cause labels and their connectors

Category bone colors and priority strips come from the diagram itself
(``Category.color`` and ``PRIORITY_COLORS``) and are the same in every theme.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass
class ThemePalette:
    """Color palette for a theme."""

    # Canvas
    background: str
    grid_color: str

    # Spine
    spine_color: str
    problem_text_color: str

    # Categories
    title_color: str
    add_button_alpha: float

    # Cause labels
    label_fill: str
    label_border: str
    label_text_color: str
    connector_color: str


# Browser editor look: white canvas, neutral grays
LIGHT_THEME = ThemePalette(
    background="#ffffff",
    grid_color="#f3f4f6",
    spine_color="#111827",
    problem_text_color="#111827",
    title_color="#111827",
    add_button_alpha=0.2,
    label_fill="#ffffff",
    label_border="#e5e7eb",
    label_text_color="#111827",
    connector_color="#6b7280",
)


# Catppuccin Mocha
DARK_THEME = ThemePalette(
    background="#11111b",
    grid_color="#181825",
    spine_color="#cdd6f4",
    problem_text_color="#cdd6f4",
    title_color="#cdd6f4",
    add_button_alpha=0.35,
    label_fill="#1e1e2e",
    label_border="#45475a",
    label_text_color="#cdd6f4",
    connector_color="#7f849c",
)


# Theme registry
THEMES: dict[str, ThemePalette] = {
    "light": LIGHT_THEME,
    "dark": DARK_THEME,
}


def get_theme(name: str) -> ThemePalette:
    """Get a theme palette by name.

    Args:
        name: Theme name ("light" or "dark")

    Returns:
        ThemePalette for the requested theme

    Raises:
        ValueError: If theme name is not recognized
    """
    if name not in THEMES:
        valid = ", ".join(THEMES.keys())
        raise ValueError(f"Unknown theme '{name}'. Valid themes: {valid}")
    return THEMES[name]
