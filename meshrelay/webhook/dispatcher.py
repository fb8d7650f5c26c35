"""Background processing of webhook notification batches.

The HTTP handler acknowledges a delivery as soon as the batch is queued;
worker tasks drain the queue and run each chat message through
loop guard → extraction → backend stream → reply.  Envelopes inside one
batch are handled in order, separate batches may run concurrently.
"""

from __future__ import annotations

import asyncio

from loguru import logger

from meshrelay.bus.events import (
    CHAT_MESSAGE_EDITED,
    CHAT_MESSAGE_RECEIVED,
    CHAT_THREAD_CREATED_WITH_USER,
    InboundEnvelope,
)
from meshrelay.providers.stream_client import StreamingBackendClient
from meshrelay.services.delivery import ReplyDelivery
from meshrelay.webhook.envelope import to_message_event
from meshrelay.webhook.extractor import MessageExtractor, extract_message_body
from meshrelay.webhook.loop_guard import LoopGuard


class ChatMessageHandler:
    """Turns one ``ChatMessageReceived`` envelope into at most one bot reply."""

    def __init__(
        self,
        guard: LoopGuard,
        extractor: MessageExtractor,
        backend: StreamingBackendClient,
        delivery: ReplyDelivery,
    ) -> None:
        self._guard = guard
        self._extractor = extractor
        self._backend = backend
        self._delivery = delivery

    async def handle(self, envelope: InboundEnvelope) -> bool:
        """Return True when a reply was posted."""
        event = to_message_event(envelope, extract_message_body(envelope.data))
        if event is None:
            logger.warning(f"Missing threadId on ACS message {envelope.id}")
            return False

        # Cheap checks first so self-authored traffic never costs a lookup.
        reason = self._guard.drop_reason(event)
        if reason:
            logger.info(f"Skipping message {envelope.id}: {reason} (sender={event.sender_display_name!r})")
            return False

        if not event.body_text and event.message_id:
            event.body_text = await self._extractor.resolve(envelope.data, event.thread_id, event.message_id)
            reason = self._guard.drop_reason(event)
            if reason:
                logger.info(f"Skipping message {envelope.id}: {reason} (sender={event.sender_display_name!r})")
                return False

        if not event.body_text:
            logger.warning(f"Missing messageBody on ACS message {envelope.id} (thread={event.thread_id})")
            return False

        reply = await self._backend.stream_reply(event.body_text)
        if not reply:
            logger.warning(f"No reply generated for ACS message {envelope.id}")
            return False
        return await self._delivery.post_text(event.thread_id, reply)


class WebhookDispatcher:
    def __init__(self, handler: ChatMessageHandler, max_workers: int = 4) -> None:
        self._handler = handler
        self._max_workers = max(1, max_workers)
        self._queue: asyncio.Queue[list[InboundEnvelope]] | None = None
        self._workers: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not w.done() for w in self._workers)

    def start(self) -> asyncio.Queue[list[InboundEnvelope]]:
        """Spawn worker tasks on the running loop (idempotent) and return their queue."""
        if self._queue is not None and self.running:
            return self._queue
        queue: asyncio.Queue[list[InboundEnvelope]] = asyncio.Queue()
        self._queue = queue
        self._workers = [
            asyncio.create_task(self._worker_loop(i + 1, queue), name=f"webhook-worker-{i + 1}")
            for i in range(self._max_workers)
        ]
        logger.info(f"Webhook dispatcher started with {self._max_workers} workers")
        return queue

    def submit(self, envelopes: list[InboundEnvelope]) -> None:
        """Queue a batch for processing and return immediately."""
        self.start().put_nowait(list(envelopes))

    async def drain(self) -> None:
        """Wait until every queued batch has been processed."""
        if self._queue is not None:
            await self._queue.join()

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._queue = None
        logger.info("Webhook dispatcher stopped")

    async def _worker_loop(self, worker_id: int, queue: asyncio.Queue[list[InboundEnvelope]]) -> None:
        while True:
            batch = await queue.get()
            try:
                await self.process(batch)
            except Exception as exc:
                logger.exception(f"Worker {worker_id} failed on batch: {exc}")
            finally:
                queue.task_done()

    async def process(self, envelopes: list[InboundEnvelope]) -> None:
        for envelope in envelopes:
            try:
                await self.dispatch(envelope)
            except Exception:
                logger.exception(f"Failed processing ACS event {envelope.id}")

    async def dispatch(self, envelope: InboundEnvelope) -> None:
        event_type = envelope.event_type
        if event_type == CHAT_MESSAGE_RECEIVED:
            await self._handler.handle(envelope)
        elif event_type == CHAT_MESSAGE_EDITED:
            logger.info(f"Chat message edited (noop): {envelope.id}")
        elif event_type == CHAT_THREAD_CREATED_WITH_USER:
            logger.info(f"Chat thread created (noop): {envelope.id}")
        else:
            logger.debug(f"Unhandled ACS event {event_type}: {envelope.id}")
