"""Adaptive card helpers for assistant responses."""

from __future__ import annotations

from typing import Any

ADAPTIVE_CARD_METADATA_KEY = "microsoft.azure.communication.chat.bot.contenttype"
ADAPTIVE_CARD_METADATA_VALUE = "azurebotservice.adaptivecard"


def adaptive_card_preview(card: dict[str, Any]) -> str:
    for item in card.get("body") or []:
        if isinstance(item, dict) and item.get("type") == "TextBlock" and isinstance(item.get("text"), str):
            return item["text"]
    return "Adaptive card"


def adaptive_card_metadata() -> dict[str, str]:
    """Message metadata that makes chat clients render the content as a card."""
    return {ADAPTIVE_CARD_METADATA_KEY: ADAPTIVE_CARD_METADATA_VALUE}
