"""Event types for the relay pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# ── provider event types ──
CHAT_MESSAGE_RECEIVED = "Microsoft.Communication.ChatMessageReceived"
CHAT_MESSAGE_EDITED = "Microsoft.Communication.ChatMessageEdited"
CHAT_THREAD_CREATED_WITH_USER = "Microsoft.Communication.ChatThreadCreatedWithUser"
SUBSCRIPTION_VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"

# ── application event types (published / consumed through Event Grid) ──
AI_USER_MESSAGE_EVENT = "Mesh.AiChat.UserMessage"
AI_ASSISTANT_RESPONSE_EVENT = "Mesh.AiChat.AssistantResponse"


@dataclass
class InboundEnvelope:
    """One notification from a (possibly batched) webhook delivery."""

    id: str | None = None
    event_type: str | None = None  # eventType, or CloudEvents "type"
    subject: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    data_version: str | None = None
    raw: Any = None


@dataclass(frozen=True)
class ValidationHandshake:
    """Subscription validation challenge; answered by echoing the code."""

    validation_code: str

    def response(self) -> dict[str, str]:
        return {"validationResponse": self.validation_code}


@dataclass
class NormalizedMessageEvent:
    """Canonical chat-message shape the loop guard and extractor work on."""

    thread_id: str
    message_id: str | None = None
    message_type: str | None = None
    sender_display_name: str | None = None
    body_text: str | None = None


@dataclass(frozen=True)
class BotIdentity:
    """Cached bot credential for the chat transport."""

    user_id: str
    token: str
    expires_on: datetime


@dataclass(frozen=True)
class OutboundReply:
    """Message posted to a chat thread."""

    thread_id: str
    content: str
    sender_display_name: str
    metadata: dict[str, str] = field(default_factory=dict)
