"""Message body extraction from loosely-shaped chat event payloads."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from meshrelay.transport.base import ChatTransport

# Top-level keys that may carry the message, in priority order.
BODY_KEYS: tuple[str, ...] = ("messageBody", "message", "body")
# Keys probed inside an object-shaped body, in priority order.
NESTED_TEXT_KEYS: tuple[str, ...] = ("message", "content", "plainText", "text")

Extractor = Callable[[Any], "str | None"]


def _string_field(key: str) -> Extractor:
    def _probe(value: Any) -> str | None:
        if isinstance(value, dict):
            field = value.get(key)
            if isinstance(field, str):
                return field
        return None

    _probe.__name__ = f"field_{key}"
    return _probe


def _plain_string(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _scalar(value: Any) -> str | None:
    if isinstance(value, (dict, list)) or value is None:
        return None
    return json.dumps(value)


EXTRACTORS: tuple[Extractor, ...] = (
    _plain_string,
    *(_string_field(key) for key in NESTED_TEXT_KEYS),
    _scalar,
)


def probe_text(value: Any) -> str | None:
    """Run the extractors over ``value``; the first hit wins."""
    for extractor in EXTRACTORS:
        text = extractor(value)
        if text is not None:
            return text
    return None


def extract_message_body(data: dict[str, Any] | None) -> str | None:
    if not data:
        return None
    body = next((data[key] for key in BODY_KEYS if data.get(key) is not None), None)
    return probe_text(body)


def extract_chat_message_content(message: Any) -> str | None:
    """Pull the text out of a message fetched from the transport."""
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, dict):
        return None
    return probe_text(content)


TokenProvider = Callable[[], Awaitable[str]]


class MessageExtractor:
    """Resolve event text, falling back to a transport lookup by id."""

    def __init__(self, transport: ChatTransport, token_provider: TokenProvider) -> None:
        self._transport = transport
        self._token_provider = token_provider

    async def resolve(
        self,
        data: dict[str, Any] | None,
        thread_id: str | None = None,
        message_id: str | None = None,
    ) -> str | None:
        body = extract_message_body(data)
        if body:
            return body
        if not (thread_id and message_id):
            return None
        return await self.fetch(thread_id, message_id)

    async def fetch(self, thread_id: str, message_id: str) -> str | None:
        try:
            token = await self._token_provider()
            message = await self._transport.get_message(token, thread_id, message_id)
        except Exception as exc:
            logger.warning(f"Failed to fetch message {message_id} from thread {thread_id}: {exc}")
            return None
        body = extract_chat_message_content(message)
        if body:
            logger.info(f"Resolved message body via thread lookup: thread={thread_id} message={message_id}")
        return body
