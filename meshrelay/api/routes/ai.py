"""AI chat triggers – publish user messages, deliver assistant responses."""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Request, Response
from loguru import logger
from pydantic import Field, ValidationError, model_validator

from meshrelay.api.deps import CamelModel, RuntimeDep, json_response
from meshrelay.bus.events import AI_ASSISTANT_RESPONSE_EVENT, InboundEnvelope
from meshrelay.runtime import RelayRuntime
from meshrelay.services.event_bridge import UserMessagePayload
from meshrelay.webhook.envelope import (
    HandshakeError,
    find_validation_event,
    handshake_from,
    normalize_envelopes,
    parse_payload,
)

router = APIRouter()


class UserMessageRequest(CamelModel):
    sender_user_id: str = Field(min_length=1)
    message_text: str = Field(min_length=1)
    phone_number: str | None = None


class AssistantResponseData(CamelModel):
    """``data`` of a ``Mesh.AiChat.AssistantResponse`` event."""

    receiver_user_id: str = Field(min_length=1)
    message_text: str | None = None
    adaptive_card: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _has_content(self) -> AssistantResponseData:
        if not self.message_text and not self.adaptive_card:
            raise ValueError("messageText or adaptiveCard is required")
        return self


@router.post("/messages")
async def publish_user_message(request: Request, runtime: RuntimeDep) -> Response:
    """Publish a "user sent AI message" event for the assistant backend."""
    try:
        body = UserMessageRequest.model_validate(parse_payload(await request.body()))
    except ValidationError:
        return json_response(400, {"error": "senderUserId and messageText are required"})

    payload = UserMessagePayload(
        sender_user_id=body.sender_user_id,
        message_text=body.message_text,
        phone_number=body.phone_number or None,
    )
    try:
        await runtime.event_bridge.publish_user_message(payload)
    except Exception as exc:
        logger.error(f"Failed to publish AI message for {body.sender_user_id}: {exc}")
        return json_response(500, {"error": str(exc) or "Failed to publish AI message"})
    return json_response(200, {"ok": True})


async def _deliver(runtime: RelayRuntime, envelope: InboundEnvelope) -> None:
    data = AssistantResponseData.model_validate(envelope.data)
    await runtime.orchestrator.deliver_assistant_response(data.receiver_user_id, data.message_text, data.adaptive_card)


@router.post("/respond")
async def deliver_assistant_responses(request: Request, runtime: RuntimeDep) -> Response:
    """Event Grid subscriber for assistant responses."""
    payload = parse_payload(await request.body())
    if not isinstance(payload, list) or not payload:
        return json_response(400, {"error": "No events provided"})

    envelopes = normalize_envelopes(payload)
    validation = find_validation_event(envelopes)
    if validation is not None:
        try:
            handshake = handshake_from(validation)
        except HandshakeError as exc:
            return json_response(400, {"error": str(exc)})
        logger.info("AI respond: answering subscription validation")
        return json_response(200, handshake.response())

    ai_events = [e for e in envelopes if e.event_type == AI_ASSISTANT_RESPONSE_EVENT]
    if not ai_events:
        return json_response(200, {"processed": 0})

    results = await asyncio.gather(*(_deliver(runtime, e) for e in ai_events), return_exceptions=True)
    failures = [r for r in results if isinstance(r, BaseException)]
    for failure in failures:
        logger.error(f"AI response delivery failed: {failure}")
    if failures:
        return json_response(500, {"error": "One or more AI response events failed", "failures": len(failures)})
    return json_response(200, {"processed": len(ai_events)})
