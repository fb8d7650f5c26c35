"""Shared fakes for the meshrelay test modules."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest

from meshrelay.providers.stream_client import StreamingBackendClient
from meshrelay.settings import RelaySettings
from meshrelay.transport.acs import AcsError
from meshrelay.transport.base import ChatTransport, IssuedToken, ThreadParticipant


class FakeTransport(ChatTransport):
    """In-memory chat transport that records every call."""

    def __init__(
        self,
        token_ttl: timedelta = timedelta(hours=24),
        fail_send: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.token_ttl = token_ttl
        self.fail_send = fail_send
        self.clock = clock or (lambda: datetime.now(tz=UTC))
        self.identities: list[str] = []
        self.tokens_issued: list[str] = []
        self.threads: dict[str, dict[str, Any]] = {}
        self.sent: list[dict[str, Any]] = []
        self.typing: list[str] = []
        self.messages: dict[tuple[str, str], dict[str, Any]] = {}
        self.fetches: list[tuple[str, str]] = []

    @property
    def endpoint_url(self) -> str:
        return "https://fake.communication.azure.com"

    async def create_identity(self) -> str:
        user_id = f"8:acs:fake-{len(self.identities) + 1}"
        self.identities.append(user_id)
        return user_id

    async def issue_token(self, user_id: str, scopes: tuple[str, ...] = ("chat",)) -> IssuedToken:
        self.tokens_issued.append(user_id)
        return IssuedToken(
            token=f"token-{len(self.tokens_issued)}",
            expires_on=self.clock() + self.token_ttl,
        )

    async def create_thread(self, token: str, topic: str, participants: list[ThreadParticipant]) -> str:
        thread_id = f"19:thread-{len(self.threads) + 1}@thread.v2"
        self.threads[thread_id] = {"topic": topic, "participants": participants, "token": token}
        return thread_id

    async def send_message(
        self,
        token: str,
        thread_id: str,
        content: str,
        sender_display_name: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        if self.fail_send:
            raise AcsError("HTTP 503: unavailable", status_code=503)
        self.sent.append({
            "token": token,
            "thread_id": thread_id,
            "content": content,
            "sender_display_name": sender_display_name,
            "metadata": metadata,
        })
        return f"msg-{len(self.sent)}"

    async def get_message(self, token: str, thread_id: str, message_id: str) -> dict[str, Any]:
        self.fetches.append((thread_id, message_id))
        try:
            return self.messages[(thread_id, message_id)]
        except KeyError:
            raise AcsError("HTTP 404: message not found", status_code=404) from None

    async def send_typing(self, token: str, thread_id: str) -> None:
        self.typing.append(thread_id)


def stream_backend(
    chunks: list[bytes] | Callable[[httpx.Request], httpx.Response],
    calls: list[httpx.Request] | None = None,
) -> StreamingBackendClient:
    """Backend client whose HTTP layer replays ``chunks`` as a streamed body."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if callable(chunks):
            return chunks(request)
        return httpx.Response(200, content=_aiter(list(chunks)))

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StreamingBackendClient("http://backend.test/chat/stream", http=http)


async def _aiter(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def settings() -> RelaySettings:
    return RelaySettings(
        _env_file=None,
        acs_connection_string="endpoint=https://fake.communication.azure.com/;accesskey=c2VjcmV0",
        event_grid_topic_endpoint="https://topic.eventgrid.test/api/events",
        event_grid_topic_key="topic-key",
        bot_display_name="Coach MESH",
        bot_prefix="[Bot]",
        max_concurrent_workers=2,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def make_backend() -> Callable[..., StreamingBackendClient]:
    return stream_backend
