"""Chat orchestration: identities, threads, credentials and assistant delivery."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from meshrelay.identity.bot_identity import BotIdentityCache
from meshrelay.services.adaptive_cards import adaptive_card_preview
from meshrelay.services.delivery import ReplyDelivery
from meshrelay.storage.directory import ChatThread, ChatUser, Directory, ThreadMode
from meshrelay.transport.base import ChatTransport, ThreadParticipant

ASSISTANT_TAGLINE = "Always-on finance guide"
ASSISTANT_PERSONA = "Financial wellness coach"
PREVIEW_LENGTH = 120


class OrchestratorError(RuntimeError):
    """Business rule or lookup failure surfaced to direct callers."""


@dataclass(frozen=True, slots=True)
class AssistantProfile:
    id: str
    display_name: str
    tagline: str
    persona: str
    acs_identity: str | None


@dataclass(frozen=True, slots=True)
class ChatCredentials:
    user_id: str
    display_name: str
    endpoint_url: str
    token: str
    thread_id: str
    topic: str


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class ChatOrchestrator:
    def __init__(
        self,
        directory: Directory,
        transport: ChatTransport,
        bot_identity: BotIdentityCache,
        delivery: ReplyDelivery,
    ) -> None:
        self._db = directory
        self._transport = transport
        self._bot = bot_identity
        self._delivery = delivery
        self._identity_locks: dict[str, asyncio.Lock] = {}
        self._thread_locks: dict[frozenset[str], asyncio.Lock] = {}

    # ── identities ───────────────────────────────────────────────────────

    async def ensure_user_identity(self, user: ChatUser) -> ChatUser:
        if user.acs_identity:
            return user
        async with self._identity_locks.setdefault(user.id, asyncio.Lock()):
            # a concurrent caller may have bound the identity while we waited
            current = await self._db.get_user(user.id) or user
            if current.acs_identity:
                return current
            if current.role == "assistant":
                # the assistant speaks with the cached bot identity
                acs_identity = (await self._bot.get()).user_id
            else:
                acs_identity = await self._transport.create_identity()
            updated = replace(current, acs_identity=acs_identity, last_seen_at=_utcnow())
            await self._db.save_user(updated)
        logger.info(f"Bound {user.id} to ACS identity {acs_identity}")
        return updated

    async def issue_token(self, user: ChatUser) -> tuple[ChatUser, str]:
        target = await self.ensure_user_identity(user)
        issued = await self._transport.issue_token(target.acs_identity or "", ("chat",))
        target = replace(target, last_seen_at=_utcnow())
        await self._db.save_user(target)
        return target, issued.token

    # ── threads ──────────────────────────────────────────────────────────

    async def ensure_thread(self, participant_ids: list[str], mode: ThreadMode, topic: str) -> ChatThread:
        existing = await self._db.get_thread_by_participants(participant_ids)
        if existing is not None:
            return existing
        async with self._thread_locks.setdefault(frozenset(participant_ids), asyncio.Lock()):
            existing = await self._db.get_thread_by_participants(participant_ids)
            if existing is not None:
                return existing
            return await self._create_thread(participant_ids, mode, topic)

    async def _create_thread(self, participant_ids: list[str], mode: ThreadMode, topic: str) -> ChatThread:
        primary = await self._db.get_user(participant_ids[0])
        if primary is None:
            raise OrchestratorError("Initiator user not found")
        _, token = await self.issue_token(primary)

        participants: list[ThreadParticipant] = []
        for pid in participant_ids:
            user = await self._db.get_user(pid)
            if user is None:
                raise OrchestratorError(f"Participant {pid} missing")
            user = await self.ensure_user_identity(user)
            participants.append(ThreadParticipant(user_id=user.acs_identity or "", display_name=user.display_name))

        acs_thread_id = await self._transport.create_thread(token, topic, participants)
        now = _utcnow()
        thread = ChatThread(
            acs_thread_id=acs_thread_id,
            mode=mode,
            topic=topic,
            participant_ids=list(participant_ids),
            created_at=now,
            last_activity_at=now,
            last_message_preview="Conversation started",
        )
        await self._db.save_thread(thread)
        logger.info(f"Created {mode} thread {thread.id} ({acs_thread_id}): {topic}")
        return thread

    # ── queries ──────────────────────────────────────────────────────────

    async def list_human_users(self) -> list[ChatUser]:
        users = await self._db.list_human_users()
        return sorted(users, key=lambda u: u.display_name.lower())

    async def get_assistant_profile(self) -> AssistantProfile:
        assistant = next((u for u in await self._db.list_users() if u.role == "assistant"), None)
        if assistant is None:
            raise OrchestratorError("Assistant profile missing from directory")
        ensured = await self.ensure_user_identity(assistant)
        return AssistantProfile(
            id=ensured.id,
            display_name=ensured.display_name,
            tagline=ASSISTANT_TAGLINE,
            persona=ASSISTANT_PERSONA,
            acs_identity=ensured.acs_identity,
        )

    async def list_threads_for_user(self, user_id: str) -> list[ChatThread]:
        threads = await self._db.list_threads_for_user(user_id)
        return sorted(threads, key=lambda t: t.last_activity_at, reverse=True)

    # ── conversations ────────────────────────────────────────────────────

    async def start_user_conversation(self, initiator_id: str, peer_id: str) -> ChatThread:
        if initiator_id == peer_id:
            raise OrchestratorError("Cannot start a thread with yourself")
        initiator = await self._db.get_user(initiator_id)
        peer = await self._db.get_user(peer_id)
        if initiator is None or peer is None:
            raise OrchestratorError("Both users must exist to create a conversation")
        if peer.role != "human":
            raise OrchestratorError("Peer must be a human user")
        topic = f"{initiator.first_name} ↔ {peer.first_name}"
        return await self.ensure_thread([initiator_id, peer_id], "user", topic)

    async def start_ai_conversation(self, user_id: str) -> ChatThread:
        assistant = await self.get_assistant_profile()
        human = await self._db.get_user(user_id)
        if human is None:
            raise OrchestratorError("User not found")
        topic = f"{assistant.display_name} with {human.first_name}"
        return await self.ensure_thread([user_id, assistant.id], "ai", topic)

    async def get_chat_credentials(self, user_id: str, thread_id: str) -> ChatCredentials:
        user = await self._db.get_user(user_id)
        if user is None:
            raise OrchestratorError("User not found")
        thread = await self._db.get_thread(thread_id)
        if thread is None:
            raise OrchestratorError("Thread not found")
        if user_id not in thread.participant_ids:
            raise OrchestratorError("User is not part of this thread")

        ensured, token = await self.issue_token(user)
        return ChatCredentials(
            user_id=ensured.acs_identity or "",
            display_name=ensured.display_name,
            endpoint_url=self._transport.endpoint_url,
            token=token,
            thread_id=thread.acs_thread_id,
            topic=thread.topic,
        )

    # ── assistant delivery ───────────────────────────────────────────────

    async def deliver_assistant_response(
        self,
        user_id: str,
        message_text: str | None,
        adaptive_card: dict[str, Any] | None = None,
    ) -> bool:
        """Post an assistant message into the user's AI thread.

        Returns ``False`` when there is nothing to send.  Lookup and transport
        failures propagate to the caller.
        """
        trimmed = (message_text or "").strip()
        if not trimmed and not adaptive_card:
            return False

        thread = await self.start_ai_conversation(user_id)

        if adaptive_card:
            reply = self._delivery.build_card(thread.acs_thread_id, adaptive_card)
            preview = adaptive_card_preview(adaptive_card)
        else:
            reply = self._delivery.build_reply(thread.acs_thread_id, trimmed)
            preview = trimmed

        await self._delivery.post(reply, typing=True)
        await self._db.save_thread(
            replace(thread, last_activity_at=_utcnow(), last_message_preview=preview[:PREVIEW_LENGTH])
        )
        return True
