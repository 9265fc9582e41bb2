"""Theme palettes cycled by instance creation order."""

from typing import NamedTuple

# Stored on the instance record (primary color only)
PRIMARY_COLORS = ("#3b82f6", "#10b981", "#ef4444", "#f59e0b", "#8b5cf6")


class ThemeColors(NamedTuple):
    primary: str
    secondary: str
    background: str


# Full palette used by the generated app config
APP_THEMES = (
    ThemeColors("#3b82f6", "#60a5fa", "#ffffff"),  # blue
    ThemeColors("#10b981", "#34d399", "#f9fafb"),  # green
    ThemeColors("#ef4444", "#f87171", "#ffffff"),  # red
    ThemeColors("#f59e0b", "#fbbf24", "#fffbeb"),  # yellow
    ThemeColors("#8b5cf6", "#a78bfa", "#f5f3ff"),  # purple
    ThemeColors("#ec4899", "#f472b6", "#fdf2f8"),  # pink
    ThemeColors("#06b6d4", "#22d3ee", "#ecfeff"),  # cyan
    ThemeColors("#84cc16", "#a3e635", "#f7fee7"),  # lime
)


def primary_color_for(index: int) -> str:
    return PRIMARY_COLORS[index % len(PRIMARY_COLORS)]


def app_theme_for(index: int) -> ThemeColors:
    return APP_THEMES[index % len(APP_THEMES)]
