from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Theme:
    name: str
    bg_panel: str
    text_primary: str
    text_muted: str
    status_success: str
    status_error: str
    status_warning: str
    status_info: str
    accent_primary: str
    selected_bg: str


DARK_THEME = Theme(
    name="dark",
    bg_panel="#1e1e2e",
    text_primary="#cdd6f4",
    text_muted="#7f849c",
    status_success="#a6e3a1",
    status_error="#f38ba8",
    status_warning="#f9e2af",
    status_info="#89b4fa",
    accent_primary="#89dceb",
    selected_bg="#313244",
)

LIGHT_THEME = Theme(
    name="light",
    bg_panel="#eff1f5",
    text_primary="#4c4f69",
    text_muted="#8c8fa1",
    status_success="#40a02b",
    status_error="#d20f39",
    status_warning="#df8e1d",
    status_info="#1e66f5",
    accent_primary="#04a5e5",
    selected_bg="#ccd0da",
)

THEMES: dict[str, Theme] = {theme.name: theme for theme in (DARK_THEME, LIGHT_THEME)}


def theme_by_name(name: str) -> Theme | None:
    return THEMES.get(name.strip().lower())
