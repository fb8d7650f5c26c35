import asyncio
import json

import httpx

from meshrelay.bus.events import (
    CHAT_MESSAGE_EDITED,
    CHAT_MESSAGE_RECEIVED,
    CHAT_THREAD_CREATED_WITH_USER,
)
from meshrelay.runtime import RelayRuntime
from meshrelay.webhook.envelope import normalize_envelopes


def _received(**data) -> dict:
    return {"id": data.pop("id", "evt-1"), "eventType": CHAT_MESSAGE_RECEIVED, "data": data}


def _runtime(settings, transport, make_backend, calls, chunks=None) -> RelayRuntime:
    chunks = chunks if chunks is not None else [b'data: "Sure thing"\n']
    return RelayRuntime(settings, transport=transport, backend=make_backend(chunks, calls))


def test_relays_user_message_to_backend_and_posts_reply(settings, transport, make_backend) -> None:
    calls: list[httpx.Request] = []
    runtime = _runtime(settings, transport, make_backend, calls)
    envelopes = normalize_envelopes([
        _received(threadId="19:t", messageId="m1", messageType="Text", senderDisplayName="Ann", messageBody="hi"),
    ])

    asyncio.run(runtime.dispatcher.process(envelopes))

    assert len(calls) == 1
    assert json.loads(calls[0].content) == {"input": {"content": "hi"}, "config": {}, "kwargs": {}}
    assert len(transport.sent) == 1
    sent = transport.sent[0]
    assert sent["thread_id"] == "19:t"
    assert sent["content"] == "[Bot] Sure thing"
    assert sent["sender_display_name"] == "Coach MESH"


def test_self_authored_message_never_reaches_backend(settings, transport, make_backend) -> None:
    calls: list[httpx.Request] = []
    runtime = _runtime(settings, transport, make_backend, calls)
    envelopes = normalize_envelopes([
        _received(threadId="19:t", messageId="m1", senderDisplayName="Coach MESH", messageBody="hello"),
        _received(id="evt-2", threadId="19:t", messageId="m2", senderDisplayName="Ann", messageBody="[Bot] echo"),
    ])

    asyncio.run(runtime.dispatcher.process(envelopes))

    assert calls == []
    assert transport.sent == []
    assert transport.fetches == []


def test_missing_body_is_fetched_then_guarded(settings, transport, make_backend) -> None:
    calls: list[httpx.Request] = []
    runtime = _runtime(settings, transport, make_backend, calls)
    transport.messages[("19:t", "m1")] = {"content": {"message": "what's up?"}}
    transport.messages[("19:t", "m2")] = {"content": {"message": "[Bot] already answered"}}
    envelopes = normalize_envelopes([
        _received(threadId="19:t", messageId="m1", senderDisplayName="Ann"),
        _received(id="evt-2", threadId="19:t", messageId="m2", senderDisplayName="Ann"),
    ])

    asyncio.run(runtime.dispatcher.process(envelopes))

    assert transport.fetches == [("19:t", "m1"), ("19:t", "m2")]
    assert len(calls) == 1
    assert json.loads(calls[0].content)["input"]["content"] == "what's up?"
    assert [m["content"] for m in transport.sent] == ["[Bot] Sure thing"]


def test_empty_backend_reply_posts_nothing(settings, transport, make_backend) -> None:
    runtime = _runtime(settings, transport, make_backend, [], chunks=[b'data: {"run_id": "r"}\n'])
    envelopes = normalize_envelopes([_received(threadId="19:t", senderDisplayName="Ann", messageBody="hi")])

    asyncio.run(runtime.dispatcher.process(envelopes))

    assert transport.sent == []


def test_events_without_thread_or_of_other_types_are_skipped(settings, transport, make_backend) -> None:
    calls: list[httpx.Request] = []
    runtime = _runtime(settings, transport, make_backend, calls)
    envelopes = normalize_envelopes([
        _received(messageBody="no thread"),
        {"id": "e", "eventType": CHAT_MESSAGE_EDITED, "data": {"threadId": "19:t", "messageBody": "x"}},
        {"id": "c", "eventType": CHAT_THREAD_CREATED_WITH_USER, "data": {"threadId": "19:t"}},
        {"id": "u", "eventType": "Something.Else", "data": {}},
    ])

    asyncio.run(runtime.dispatcher.process(envelopes))

    assert calls == []
    assert transport.sent == []


def test_failing_event_does_not_stop_the_batch(settings, transport, make_backend) -> None:
    runtime = _runtime(settings, transport, make_backend, [])
    envelopes = normalize_envelopes([
        _received(threadId="19:a", senderDisplayName="Ann", messageBody="one"),
        _received(id="evt-2", threadId="19:b", senderDisplayName="Ann", messageBody="two"),
    ])
    real_handle = runtime.dispatcher._handler.handle

    async def flaky(envelope):
        if envelope.id == "evt-1":
            raise RuntimeError("boom")
        return await real_handle(envelope)

    runtime.dispatcher._handler.handle = flaky
    asyncio.run(runtime.dispatcher.process(envelopes))

    assert [m["thread_id"] for m in transport.sent] == ["19:b"]


def test_submit_queues_and_workers_drain(settings, transport, make_backend) -> None:
    runtime = _runtime(settings, transport, make_backend, [])

    async def scenario() -> None:
        dispatcher = runtime.dispatcher
        dispatcher.submit(normalize_envelopes([_received(threadId="19:a", senderDisplayName="Ann", messageBody="a")]))
        dispatcher.submit(normalize_envelopes([_received(threadId="19:b", senderDisplayName="Ann", messageBody="b")]))
        assert dispatcher.running
        await dispatcher.drain()
        await runtime.aclose()
        assert not dispatcher.running

    asyncio.run(scenario())

    assert sorted(m["thread_id"] for m in transport.sent) == ["19:a", "19:b"]


def test_start_is_idempotent_and_restartable(settings, transport, make_backend) -> None:
    runtime = _runtime(settings, transport, make_backend, [])

    async def scenario() -> None:
        dispatcher = runtime.dispatcher
        queue = dispatcher.start()
        assert dispatcher.start() is queue
        await dispatcher.stop()
        assert not dispatcher.running

        dispatcher.submit(normalize_envelopes([_received(threadId="19:c", senderDisplayName="Ann", messageBody="c")]))
        assert dispatcher.running
        await dispatcher.drain()
        await runtime.aclose()

    asyncio.run(scenario())

    assert [m["thread_id"] for m in transport.sent] == ["19:c"]
