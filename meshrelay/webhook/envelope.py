"""Envelope normalization for Event Grid / CloudEvents webhook deliveries.

A delivery may be a single event object or a batch (JSON array).  Before
any live event is delivered the provider sends a subscription validation
event that must be answered by echoing its ``validationCode``.
"""

from __future__ import annotations

import json
from typing import Any

from meshrelay.bus.events import (
    SUBSCRIPTION_VALIDATION_EVENT,
    InboundEnvelope,
    NormalizedMessageEvent,
    ValidationHandshake,
)

VALIDATION_HEADER = "aeg-event-type"
VALIDATION_HEADER_VALUES = frozenset({"SubscriptionValidation", "UnsubscribeValidation"})


class HandshakeError(ValueError):
    """A validation event arrived without a validation code."""


def parse_payload(body: bytes | str) -> Any:
    """Decode a request body; undecodable input is treated as absent."""
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError):
        return None


def _to_envelope(item: Any) -> InboundEnvelope:
    if not isinstance(item, dict):
        return InboundEnvelope(raw=item)
    data = item.get("data")
    return InboundEnvelope(
        id=_opt_str(item.get("id")),
        event_type=_opt_str(item.get("eventType") or item.get("type")),
        subject=_opt_str(item.get("subject")),
        data=data if isinstance(data, dict) else {},
        data_version=_opt_str(item.get("dataVersion")),
        raw=item,
    )


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def normalize_envelopes(payload: Any) -> list[InboundEnvelope]:
    """Turn any decoded payload into an ordered list of envelopes."""
    if payload is None:
        return []
    if isinstance(payload, list):
        return [_to_envelope(item) for item in payload]
    if isinstance(payload, dict):
        return [_to_envelope(payload)]
    return []


def handshake_from(envelope: InboundEnvelope | None) -> ValidationHandshake:
    code = envelope.data.get("validationCode") if envelope else None
    if not isinstance(code, str) or not code:
        raise HandshakeError("Missing validation code")
    return ValidationHandshake(validation_code=code)


def find_validation_event(envelopes: list[InboundEnvelope]) -> InboundEnvelope | None:
    for envelope in envelopes:
        if envelope.event_type == SUBSCRIPTION_VALIDATION_EVENT:
            return envelope
    return None


def extract_validation(payload: Any, header_value: str | None = None) -> ValidationHandshake | None:
    """Detect a subscription validation handshake.

    Returns ``None`` for ordinary notifications.  Raises ``HandshakeError``
    when the payload is a validation event but carries no code.
    """
    envelopes = normalize_envelopes(payload)
    if header_value in VALIDATION_HEADER_VALUES:
        return handshake_from(envelopes[0] if envelopes else None)

    # CloudEvents schema (no aeg-event-type header): only the first event counts
    if envelopes and envelopes[0].event_type == SUBSCRIPTION_VALIDATION_EVENT:
        return handshake_from(envelopes[0])
    return None


def to_message_event(envelope: InboundEnvelope, body_text: str | None = None) -> NormalizedMessageEvent | None:
    """Project a chat-message envelope onto the canonical message shape.

    Returns ``None`` when the envelope has no thread to reply into.
    """
    data = envelope.data
    thread_id = _opt_str(data.get("threadId"))
    if not thread_id:
        return None
    return NormalizedMessageEvent(
        thread_id=thread_id,
        message_id=_opt_str(data.get("messageId")),
        message_type=_opt_str(data.get("messageType")),
        sender_display_name=_opt_str(data.get("senderDisplayName")),
        body_text=body_text,
    )
