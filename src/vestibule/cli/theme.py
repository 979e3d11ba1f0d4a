"""Colors and static text for the chat UI."""

from __future__ import annotations

from dataclasses import dataclass

from ..models import Role


@dataclass(frozen=True)
class Theme:
    user_color: str = "deepskyblue2"
    assistant_color: str = "yellow"
    system_color: str = "green"
    info_color: str = "grey62"
    error_color: str = "red"
    chrome_color: str = "#6b7280"  # panel borders, hints
    input_prompt: str = "> "
    help_text: str = "Enter=Send • Shift+Enter=New line • Ctrl+C=Clear/Exit"

    def color_for(self, role: Role | str) -> str:
        try:
            role = Role.parse(role)
        except ValueError:
            return self.info_color
        return {
            Role.USER: self.user_color,
            Role.ASSISTANT: self.assistant_color,
            Role.SYSTEM: self.system_color,
            Role.INFO: self.info_color,
            Role.ERROR: self.error_color,
        }[role]


DEFAULT_THEME = Theme()
