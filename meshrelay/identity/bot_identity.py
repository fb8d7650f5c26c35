"""Process-wide cache for the bot's transport identity and access token."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from loguru import logger

from meshrelay.bus.events import BotIdentity
from meshrelay.transport.base import ChatTransport


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class BotIdentityCache:
    """Lazily mints and refreshes the bot credential.

    A cached token is handed out only while it has more than
    ``refresh_margin`` left; otherwise a new token is issued for the same
    identity.  A new identity is created only when none is known yet.
    """

    def __init__(
        self,
        transport: ChatTransport,
        user_id: str | None = None,
        scopes: tuple[str, ...] = ("chat",),
        refresh_margin: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._transport = transport
        self._seed_user_id = user_id or None
        self._scopes = scopes
        self._margin = refresh_margin
        self._clock = clock
        self._cached: BotIdentity | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> BotIdentity | None:
        return self._cached

    def _is_fresh(self, identity: BotIdentity | None) -> bool:
        return identity is not None and identity.expires_on - self._clock() > self._margin

    async def get(self) -> BotIdentity:
        if self._is_fresh(self._cached):
            return self._cached  # type: ignore[return-value]
        async with self._lock:
            # another caller may have refreshed while we waited
            if self._is_fresh(self._cached):
                return self._cached  # type: ignore[return-value]
            self._cached = await self._refresh()
            return self._cached

    async def token(self) -> str:
        return (await self.get()).token

    async def _refresh(self) -> BotIdentity:
        user_id = self._cached.user_id if self._cached else self._seed_user_id
        if not user_id:
            user_id = await self._transport.create_identity()
            logger.info(f"Created bot identity {user_id}")
        issued = await self._transport.issue_token(user_id, self._scopes)
        logger.debug(f"Issued bot token for {user_id}, expires {issued.expires_on.isoformat()}")
        return BotIdentity(user_id=user_id, token=issued.token, expires_on=issued.expires_on)
