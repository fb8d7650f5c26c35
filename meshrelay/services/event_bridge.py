"""Publish direct "user sent AI message" triggers onto Event Grid."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from meshrelay.bus.events import AI_USER_MESSAGE_EVENT
from meshrelay.transport.eventgrid import EventGridPublisher, build_event


@dataclass(frozen=True, slots=True)
class UserMessagePayload:
    sender_user_id: str
    message_text: str
    phone_number: str | None = None

    def to_event_data(self) -> dict[str, str]:
        data = {"senderUserId": self.sender_user_id, "messageText": self.message_text}
        if self.phone_number:
            data["phoneNumber"] = self.phone_number
        return data


class AiEventBridge:
    def __init__(self, publisher: EventGridPublisher) -> None:
        self._publisher = publisher

    async def publish_user_message(self, payload: UserMessagePayload) -> None:
        event = build_event(
            AI_USER_MESSAGE_EVENT,
            subject=f"ai-chat/{payload.sender_user_id}",
            data=payload.to_event_data(),
        )
        await self._publisher.send([event])
        logger.info(f"Published AI user message for {payload.sender_user_id}")

    async def aclose(self) -> None:
        await self._publisher.aclose()
