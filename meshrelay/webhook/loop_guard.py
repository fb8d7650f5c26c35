"""Suppress bot-authored and non-text traffic so replies never feed back."""

from __future__ import annotations

from dataclasses import dataclass

from meshrelay.bus.events import NormalizedMessageEvent


@dataclass(frozen=True)
class LoopGuard:
    bot_display_name: str
    bot_prefix: str

    def drop_reason(self, event: NormalizedMessageEvent) -> str | None:
        """Return why ``event`` must be dropped, or ``None`` to keep it."""
        if event.sender_display_name is not None and event.sender_display_name == self.bot_display_name:
            return "self-authored"
        if event.body_text and self.bot_prefix and event.body_text.strip().startswith(self.bot_prefix):
            return "bot-prefixed"
        if event.message_type and event.message_type.lower() != "text":
            return f"non-text ({event.message_type})"
        return None

    def allows(self, event: NormalizedMessageEvent) -> bool:
        return self.drop_reason(event) is None

    def mark(self, text: str) -> str:
        """Prefix outbound text with the bot marker."""
        return f"{self.bot_prefix} {text}"
