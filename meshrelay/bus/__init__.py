"""Domain events flowing between the webhook, the backend and the transport."""

from meshrelay.bus.events import (
    BotIdentity,
    InboundEnvelope,
    NormalizedMessageEvent,
    OutboundReply,
    ValidationHandshake,
)

__all__ = [
    "BotIdentity",
    "InboundEnvelope",
    "NormalizedMessageEvent",
    "OutboundReply",
    "ValidationHandshake",
]
