"""In-process directory of chat users and threads.

Records live for the lifetime of the process only.  The ``Directory``
base class is the seam for swapping in a persistent store.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Literal

UserRole = Literal["human", "assistant"]
PresenceStatus = Literal["online", "offline", "away"]
ThreadMode = Literal["user", "ai"]


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class ChatUser:
    id: str
    display_name: str
    role: UserRole = "human"
    accent_color: str = "#A5B4FC"
    acs_identity: str | None = None
    presence: PresenceStatus = "offline"
    created_at: datetime = field(default_factory=_utcnow)
    last_seen_at: datetime = field(default_factory=_utcnow)

    @property
    def first_name(self) -> str:
        return self.display_name.split(" ")[0]


@dataclass
class ChatThread:
    acs_thread_id: str
    mode: ThreadMode
    topic: str
    participant_ids: list[str]
    id: str = field(default_factory=_uuid)
    created_at: datetime = field(default_factory=_utcnow)
    last_activity_at: datetime = field(default_factory=_utcnow)
    last_message_preview: str | None = None


class Directory(ABC):
    @abstractmethod
    async def list_users(self) -> list[ChatUser]: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> ChatUser | None: ...

    @abstractmethod
    async def save_user(self, user: ChatUser) -> None: ...

    @abstractmethod
    async def list_threads(self) -> list[ChatThread]: ...

    @abstractmethod
    async def get_thread(self, thread_id: str) -> ChatThread | None: ...

    @abstractmethod
    async def save_thread(self, thread: ChatThread) -> None: ...

    async def list_human_users(self) -> list[ChatUser]:
        return [u for u in await self.list_users() if u.role == "human"]

    async def list_threads_for_user(self, user_id: str) -> list[ChatThread]:
        return [t for t in await self.list_threads() if user_id in t.participant_ids]

    async def get_thread_by_participants(self, participant_ids: list[str]) -> ChatThread | None:
        wanted = set(participant_ids)
        for thread in await self.list_threads():
            if set(thread.participant_ids) == wanted:
                return thread
        return None


class InMemoryDirectory(Directory):
    def __init__(self) -> None:
        self._users: dict[str, ChatUser] = {}
        self._threads: dict[str, ChatThread] = {}

    async def list_users(self) -> list[ChatUser]:
        return [replace(u) for u in self._users.values()]

    async def get_user(self, user_id: str) -> ChatUser | None:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def save_user(self, user: ChatUser) -> None:
        self._users[user.id] = replace(user)

    async def list_threads(self) -> list[ChatThread]:
        return [replace(t, participant_ids=list(t.participant_ids)) for t in self._threads.values()]

    async def get_thread(self, thread_id: str) -> ChatThread | None:
        thread = self._threads.get(thread_id)
        return replace(thread, participant_ids=list(thread.participant_ids)) if thread else None

    async def save_thread(self, thread: ChatThread) -> None:
        self._threads[thread.id] = replace(thread, participant_ids=list(thread.participant_ids))


# ── built-in demo users ──────────────────────────────────────────────────

DEMO_USERS: tuple[ChatUser, ...] = (
    ChatUser(id="fredrick", display_name="Fredrick Maina", accent_color="#38BDF8", presence="online"),
    ChatUser(id="assumpta", display_name="Assumpta Wanyama", accent_color="#34D399", presence="online"),
    ChatUser(id="rohi", display_name="Rohi Ogula", accent_color="#F472B6", presence="away"),
    ChatUser(id="guest", display_name="Guest", accent_color="#A5B4FC", presence="offline"),
)

ASSISTANT_USER_ID = "coach-mesh"


async def seed_directory(
    directory: Directory,
    assistant_display_name: str = "Coach MESH",
    assistant_acs_identity: str | None = None,
) -> None:
    """Load the demo humans and the assistant profile, keeping existing records."""
    for user in DEMO_USERS:
        if await directory.get_user(user.id) is None:
            await directory.save_user(replace(user))
    if await directory.get_user(ASSISTANT_USER_ID) is None:
        await directory.save_user(
            ChatUser(
                id=ASSISTANT_USER_ID,
                display_name=assistant_display_name,
                role="assistant",
                accent_color="#E879F9",
                acs_identity=assistant_acs_identity,
                presence="online",
            )
        )
