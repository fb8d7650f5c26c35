"""Base contract for chat transports."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class IssuedToken:
    token: str
    expires_on: datetime


@dataclass(frozen=True, slots=True)
class ThreadParticipant:
    user_id: str
    display_name: str


class ChatTransport(ABC):
    """Chat-thread service: identities, tokens, threads and messages.

    Thread operations act on behalf of the user whose access token is passed in.
    """

    @property
    def endpoint_url(self) -> str:
        return ""

    @abstractmethod
    async def create_identity(self) -> str:
        """Create a new communication identity and return its id."""

    @abstractmethod
    async def issue_token(self, user_id: str, scopes: tuple[str, ...] = ("chat",)) -> IssuedToken:
        pass

    @abstractmethod
    async def create_thread(self, token: str, topic: str, participants: list[ThreadParticipant]) -> str:
        """Create a chat thread and return its id."""

    @abstractmethod
    async def send_message(
        self,
        token: str,
        thread_id: str,
        content: str,
        sender_display_name: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Post a message and return its id."""

    @abstractmethod
    async def get_message(self, token: str, thread_id: str, message_id: str) -> dict[str, Any]:
        pass

    @abstractmethod
    async def send_typing(self, token: str, thread_id: str) -> None:
        pass

    async def aclose(self) -> None:
        return None
