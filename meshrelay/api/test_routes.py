import asyncio
import json

import httpx

from conftest import FakeTransport, stream_backend
from meshrelay.api.app import create_app
from meshrelay.bus.events import (
    AI_ASSISTANT_RESPONSE_EVENT,
    AI_USER_MESSAGE_EVENT,
    CHAT_MESSAGE_RECEIVED,
    SUBSCRIPTION_VALIDATION_EVENT,
)
from meshrelay.runtime import RelayRuntime
from meshrelay.services.event_bridge import AiEventBridge
from meshrelay.transport.eventgrid import EventGridPublisher


class _Harness:
    def __init__(self, settings, publish_status: int = 200) -> None:
        self.transport = FakeTransport()
        self.backend_calls: list[httpx.Request] = []
        self.published: list[httpx.Request] = []

        def topic(request: httpx.Request) -> httpx.Response:
            self.published.append(request)
            return httpx.Response(publish_status, text="" if publish_status < 400 else "topic down")

        publisher = EventGridPublisher(
            settings.event_grid_topic_endpoint,
            settings.event_grid_topic_key,
            http=httpx.AsyncClient(transport=httpx.MockTransport(topic)),
        )
        self.runtime = RelayRuntime(
            settings,
            transport=self.transport,
            backend=stream_backend([b'data: "Happy to help"\n'], self.backend_calls),
            event_bridge=AiEventBridge(publisher),
        )
        self.app = create_app(self.runtime)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=self.app), base_url="http://relay.test")

    def run(self, scenario):
        async def wrapped():
            async with self.client() as client:
                try:
                    return await scenario(client)
                finally:
                    await self.runtime.aclose()

        return asyncio.run(wrapped())


def test_health(settings) -> None:
    harness = _Harness(settings)

    resp = harness.run(lambda client: client.get("/health"))

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_ai_messages_publishes_exactly_one_event(settings) -> None:
    harness = _Harness(settings)

    resp = harness.run(lambda client: client.post("/ai/messages", json={"senderUserId": "u1", "messageText": "hi"}))

    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert len(harness.published) == 1
    request = harness.published[0]
    assert request.headers["aeg-sas-key"] == "topic-key"
    (event,) = json.loads(request.content)
    assert event["eventType"] == AI_USER_MESSAGE_EVENT
    assert event["subject"] == "ai-chat/u1"
    assert event["dataVersion"] == "1.0"
    assert event["data"] == {"senderUserId": "u1", "messageText": "hi"}


def test_ai_messages_validates_and_reports_publish_errors(settings) -> None:
    missing = _Harness(settings).run(lambda client: client.post("/ai/messages", json={"senderUserId": "u1"}))
    assert missing.status_code == 400
    assert missing.json() == {"error": "senderUserId and messageText are required"}

    failing = _Harness(settings, publish_status=500)
    resp = failing.run(lambda client: client.post("/ai/messages", json={"senderUserId": "u1", "messageText": "hi"}))
    assert resp.status_code == 500
    assert "topic down" in resp.json()["error"]


def test_webhook_answers_validation_without_dispatch(settings) -> None:
    harness = _Harness(settings)
    payload = [{"id": "v1", "eventType": SUBSCRIPTION_VALIDATION_EVENT, "data": {"validationCode": "abc123"}}]

    resp = harness.run(
        lambda client: client.post("/webhook", json=payload, headers={"aeg-event-type": "SubscriptionValidation"})
    )

    assert resp.status_code == 200
    assert resp.json() == {"validationResponse": "abc123"}
    assert not harness.runtime.dispatcher.running
    assert harness.backend_calls == []


def test_webhook_validation_without_code_is_rejected(settings) -> None:
    harness = _Harness(settings)
    payload = [{"eventType": SUBSCRIPTION_VALIDATION_EVENT, "data": {}}]

    resp = harness.run(lambda client: client.post("/azure/chat/webhook", json=payload))

    assert resp.status_code == 400


def test_webhook_ignores_unparseable_body(settings) -> None:
    harness = _Harness(settings)

    resp = harness.run(lambda client: client.post("/webhook", content=b"not json"))

    assert resp.status_code == 400
    assert resp.json() == {"status": "ignored", "reason": "no events parsed"}


def test_webhook_acknowledges_then_replies(settings) -> None:
    harness = _Harness(settings)
    payload = [
        {
            "id": "e1",
            "eventType": CHAT_MESSAGE_RECEIVED,
            "data": {"threadId": "19:t", "messageId": "m1", "senderDisplayName": "Ann", "messageBody": "budget tips?"},
        },
        {
            "id": "e2",
            "eventType": CHAT_MESSAGE_RECEIVED,
            "data": {"threadId": "19:t", "messageId": "m2", "senderDisplayName": "Coach MESH", "messageBody": "x"},
        },
    ]

    async def scenario(client):
        resp = await client.post("/webhook", json=payload)
        await harness.runtime.dispatcher.drain()
        return resp

    resp = harness.run(scenario)

    assert resp.status_code == 202
    assert resp.json() == {"status": "accepted"}
    assert len(harness.backend_calls) == 1
    assert [m["content"] for m in harness.transport.sent] == ["[Bot] Happy to help"]


def test_respond_delivers_assistant_events(settings) -> None:
    harness = _Harness(settings)
    events = [
        {"id": "r1", "eventType": AI_ASSISTANT_RESPONSE_EVENT, "data": {"receiverUserId": "guest", "messageText": "Hi"}},
        {"id": "other", "eventType": "Something.Else", "data": {}},
    ]

    async def scenario(client):
        resp = await client.post("/ai/respond", json=events)
        threads = await client.get("/users/guest/threads")
        return resp, threads

    resp, threads = harness.run(scenario)

    assert resp.status_code == 200
    assert resp.json() == {"processed": 1}
    assert [m["content"] for m in harness.transport.sent] == ["[Bot] Hi"]
    (thread,) = threads.json()["threads"]
    assert thread["mode"] == "ai"
    assert thread["lastMessagePreview"] == "Hi"
    assert thread["unreadCount"] == 0


def test_respond_edge_cases(settings) -> None:
    async def scenario(client):
        empty = await client.post("/ai/respond", json=[])
        handshake = await client.post(
            "/ai/respond",
            json=[{"eventType": SUBSCRIPTION_VALIDATION_EVENT, "data": {"validationCode": "code-1"}}],
        )
        unrelated = await client.post("/ai/respond", json=[{"eventType": "Something.Else", "data": {}}])
        broken = await client.post(
            "/ai/respond",
            json=[{"eventType": AI_ASSISTANT_RESPONSE_EVENT, "data": {"receiverUserId": "nobody", "messageText": "x"}}],
        )
        return empty, handshake, unrelated, broken

    empty, handshake, unrelated, broken = _Harness(settings).run(scenario)

    assert empty.status_code == 400
    assert handshake.json() == {"validationResponse": "code-1"}
    assert unrelated.json() == {"processed": 0}
    assert broken.status_code == 500
    assert broken.json()["failures"] == 1


def test_users_threads_and_chat_config(settings) -> None:
    harness = _Harness(settings)

    async def scenario(client):
        users = await client.get("/users")
        created = await client.post("/threads", json={"initiatorId": "fredrick", "peerId": "rohi", "mode": "user"})
        thread_id = created.json()["thread"]["id"]
        config = await client.post("/chat/config", json={"userId": "rohi", "threadId": thread_id})
        outsider = await client.post("/chat/config", json={"userId": "guest", "threadId": thread_id})
        missing = await client.post("/chat/config", json={"userId": "rohi"})
        bad_peer = await client.post("/threads", json={"initiatorId": "fredrick", "mode": "user"})
        return users, created, config, outsider, missing, bad_peer

    users, created, config, outsider, missing, bad_peer = harness.run(scenario)

    body = users.json()
    assert [u["id"] for u in body["users"]] == ["assumpta", "fredrick", "guest", "rohi"]
    assert body["assistant"]["displayName"] == "Coach MESH"

    assert created.status_code == 200
    assert created.json()["thread"]["topic"] == "Fredrick ↔ Rohi"
    assert created.json()["config"]["displayName"] == "Fredrick Maina"

    assert config.status_code == 200
    cfg = config.json()["config"]
    assert cfg["endpointUrl"] == "https://fake.communication.azure.com"
    assert cfg["threadId"] == created.json()["thread"]["acsThreadId"]
    assert cfg["displayName"] == "Rohi Ogula"

    assert outsider.status_code == 400
    assert missing.status_code == 400
    assert bad_peer.status_code == 400


def test_request_bodies_are_validated(settings) -> None:
    async def scenario(client):
        return {
            "numeric_text": await client.post("/ai/messages", json={"senderUserId": "u1", "messageText": 5}),
            "blank_sender": await client.post("/ai/messages", json={"senderUserId": "", "messageText": "hi"}),
            "not_an_object": await client.post("/chat/config", json=["rohi", "t"]),
            "no_body": await client.post("/chat/config"),
            "unknown_mode": await client.post("/threads", json={"initiatorId": "fredrick", "mode": "group"}),
            "empty_event": await client.post(
                "/ai/respond",
                json=[{"eventType": AI_ASSISTANT_RESPONSE_EVENT, "data": {"receiverUserId": "guest"}}],
            ),
        }

    harness = _Harness(settings)
    responses = harness.run(scenario)

    assert responses["numeric_text"].status_code == 400
    assert responses["blank_sender"].json() == {"error": "senderUserId and messageText are required"}
    assert responses["not_an_object"].json() == {"error": "userId and threadId are required"}
    assert responses["no_body"].status_code == 400
    assert responses["unknown_mode"].json() == {"error": "initiatorId and mode are required"}
    assert responses["empty_event"].status_code == 500
    assert responses["empty_event"].json()["failures"] == 1
    assert harness.published == []
    assert harness.transport.sent == []
    assert harness.transport.threads == {}
