"""ACS event subscription webhook endpoint (Event Grid push).

Answers subscription validation handshakes synchronously; every other
delivery is acknowledged with 202 and processed in the background.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response
from loguru import logger

from meshrelay.api.deps import RuntimeDep, json_response
from meshrelay.webhook.envelope import (
    VALIDATION_HEADER,
    HandshakeError,
    extract_validation,
    normalize_envelopes,
    parse_payload,
)

router = APIRouter()


@router.post("/webhook")
@router.post("/azure/chat/webhook")
async def acs_webhook(request: Request, runtime: RuntimeDep) -> Response:
    aeg_event_type = request.headers.get(VALIDATION_HEADER)
    payload = parse_payload(await request.body())

    # ── 1. Subscription validation handshake ──
    try:
        handshake = extract_validation(payload, aeg_event_type)
    except HandshakeError as exc:
        logger.warning(f"ACS webhook: validation event without code ({aeg_event_type})")
        return json_response(400, {"error": str(exc)})
    if handshake is not None:
        logger.info(f"ACS webhook: responding to validation ({aeg_event_type})")
        return json_response(200, handshake.response())

    # ── 2. Notifications ──
    envelopes = normalize_envelopes(payload)
    if not envelopes:
        return json_response(400, {"status": "ignored", "reason": "no events parsed"})

    logger.info(
        f"ACS webhook: {len(envelopes)} notification(s) received "
        f"({', '.join(str(e.event_type) for e in envelopes)})"
    )

    # ── 3. Acknowledge now, process in the background ──
    runtime.dispatcher.submit(envelopes)
    return json_response(202, {"status": "accepted"})
