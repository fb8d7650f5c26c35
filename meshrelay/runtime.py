"""Wiring of the relay's collaborators into one runtime object."""

from __future__ import annotations

from datetime import timedelta
from functools import cached_property

from loguru import logger

from meshrelay.identity.bot_identity import BotIdentityCache
from meshrelay.providers.stream_client import StreamingBackendClient
from meshrelay.services.delivery import ReplyDelivery
from meshrelay.services.event_bridge import AiEventBridge
from meshrelay.services.orchestrator import ChatOrchestrator
from meshrelay.settings import RelaySettings, get_settings
from meshrelay.storage.directory import Directory, InMemoryDirectory, seed_directory
from meshrelay.transport.acs import AcsTransport
from meshrelay.transport.base import ChatTransport
from meshrelay.transport.eventgrid import EventGridPublisher
from meshrelay.webhook.dispatcher import ChatMessageHandler, WebhookDispatcher
from meshrelay.webhook.extractor import MessageExtractor
from meshrelay.webhook.loop_guard import LoopGuard


class RelayRuntime:
    """Owns every long-lived collaborator; pieces are built on first use.

    Tests pass fakes for the transport, backend, directory or event bridge.
    """

    def __init__(
        self,
        settings: RelaySettings | None = None,
        *,
        transport: ChatTransport | None = None,
        backend: StreamingBackendClient | None = None,
        directory: Directory | None = None,
        event_bridge: AiEventBridge | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._backend = backend
        self._event_bridge = event_bridge
        self.directory = directory or InMemoryDirectory()
        self._seeded = False

    @cached_property
    def transport(self) -> ChatTransport:
        return self._transport or AcsTransport(settings=self.settings)

    @cached_property
    def backend(self) -> StreamingBackendClient:
        return self._backend or StreamingBackendClient(
            self.settings.stream_url, timeout=self.settings.stream_timeout_seconds
        )

    @cached_property
    def event_bridge(self) -> AiEventBridge:
        if self._event_bridge is not None:
            return self._event_bridge
        endpoint, key = self.settings.require_event_grid()
        return AiEventBridge(EventGridPublisher(endpoint, key))

    @cached_property
    def guard(self) -> LoopGuard:
        return LoopGuard(self.settings.bot_display_name, self.settings.bot_prefix)

    @cached_property
    def bot_identity(self) -> BotIdentityCache:
        return BotIdentityCache(
            self.transport,
            user_id=self.settings.bot_user_id or None,
            refresh_margin=timedelta(seconds=self.settings.token_refresh_margin_seconds),
        )

    @cached_property
    def delivery(self) -> ReplyDelivery:
        return ReplyDelivery(self.transport, self.bot_identity, self.guard)

    @cached_property
    def orchestrator(self) -> ChatOrchestrator:
        return ChatOrchestrator(self.directory, self.transport, self.bot_identity, self.delivery)

    @cached_property
    def dispatcher(self) -> WebhookDispatcher:
        handler = ChatMessageHandler(
            guard=self.guard,
            extractor=MessageExtractor(self.transport, self.bot_identity.token),
            backend=self.backend,
            delivery=self.delivery,
        )
        return WebhookDispatcher(handler, max_workers=self.settings.max_concurrent_workers)

    async def ensure_seeded(self) -> None:
        if self._seeded or not self.settings.seed_directory:
            return
        await seed_directory(
            self.directory,
            assistant_display_name=self.settings.bot_display_name,
            assistant_acs_identity=self.settings.bot_user_id or None,
        )
        self._seeded = True
        logger.debug("Directory seeded with demo users")

    async def aclose(self) -> None:
        if "dispatcher" in self.__dict__:
            await self.dispatcher.stop()
        for name in ("transport", "backend", "event_bridge"):
            component = self.__dict__.get(name)
            if component is not None:
                await component.aclose()
