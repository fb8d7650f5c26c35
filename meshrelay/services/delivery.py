"""Post assistant-authored messages to a chat thread as the bot."""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from meshrelay.bus.events import OutboundReply
from meshrelay.identity.bot_identity import BotIdentityCache
from meshrelay.services.adaptive_cards import adaptive_card_metadata
from meshrelay.transport.base import ChatTransport
from meshrelay.webhook.loop_guard import LoopGuard


class ReplyDelivery:
    def __init__(self, transport: ChatTransport, identity: BotIdentityCache, guard: LoopGuard) -> None:
        self._transport = transport
        self._identity = identity
        self._guard = guard

    def build_reply(self, thread_id: str, text: str) -> OutboundReply:
        return OutboundReply(
            thread_id=thread_id,
            content=self._guard.mark(text),
            sender_display_name=self._guard.bot_display_name,
        )

    def build_card(self, thread_id: str, card: dict[str, Any]) -> OutboundReply:
        return OutboundReply(
            thread_id=thread_id,
            content=json.dumps(card),
            sender_display_name=self._guard.bot_display_name,
            metadata=adaptive_card_metadata(),
        )

    async def post(self, reply: OutboundReply, typing: bool = False) -> str:
        """Send ``reply`` with the cached bot token; transport errors propagate."""
        identity = await self._identity.get()
        if typing:
            try:
                await self._transport.send_typing(identity.token, reply.thread_id)
            except Exception as exc:
                logger.debug(f"Typing notification failed for {reply.thread_id}: {exc}")
        logger.info(f"Sending bot reply: thread={reply.thread_id} user={identity.user_id}")
        return await self._transport.send_message(
            identity.token,
            reply.thread_id,
            reply.content,
            reply.sender_display_name,
            metadata=reply.metadata or None,
        )

    async def post_text(self, thread_id: str, text: str) -> bool:
        """Fire-and-forget variant for background paths: failures are logged, not raised."""
        try:
            await self.post(self.build_reply(thread_id, text))
        except Exception as exc:
            logger.error(f"Failed to post bot reply to {thread_id}: {exc}")
            return False
        logger.info(f"Posted bot reply to {thread_id}")
        return True
