"""Directory and thread API – users, threads and chat client credentials."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Request, Response
from loguru import logger
from pydantic import Field, ValidationError

from meshrelay.api.deps import CamelModel, RuntimeDep, json_response
from meshrelay.services.orchestrator import AssistantProfile, ChatCredentials
from meshrelay.storage.directory import ChatThread, ChatUser
from meshrelay.webhook.envelope import parse_payload

router = APIRouter()


# ── schemas ──────────────────────────────────────────────────────────────


class UserOut(CamelModel):
    id: str
    display_name: str
    role: str
    accent_color: str
    acs_identity: str | None
    presence: str
    created_at: datetime
    last_seen_at: datetime

    @classmethod
    def of(cls, user: ChatUser) -> UserOut:
        return cls(**vars(user))


class ThreadOut(CamelModel):
    id: str
    acs_thread_id: str
    mode: str
    topic: str
    participant_ids: list[str]
    created_at: datetime
    last_activity_at: datetime
    last_message_preview: str | None
    unread_count: int = 0

    @classmethod
    def of(cls, thread: ChatThread) -> ThreadOut:
        return cls(**vars(thread))


class AssistantOut(CamelModel):
    id: str
    display_name: str
    tagline: str
    persona: str
    acs_identity: str | None

    @classmethod
    def of(cls, profile: AssistantProfile) -> AssistantOut:
        return cls(
            id=profile.id,
            display_name=profile.display_name,
            tagline=profile.tagline,
            persona=profile.persona,
            acs_identity=profile.acs_identity,
        )


class CredentialsOut(CamelModel):
    user_id: str
    display_name: str
    endpoint_url: str
    token: str
    thread_id: str
    topic: str

    @classmethod
    def of(cls, creds: ChatCredentials) -> CredentialsOut:
        return cls(
            user_id=creds.user_id,
            display_name=creds.display_name,
            endpoint_url=creds.endpoint_url,
            token=creds.token,
            thread_id=creds.thread_id,
            topic=creds.topic,
        )


class ChatConfigRequest(CamelModel):
    user_id: str = Field(min_length=1)
    thread_id: str = Field(min_length=1)


class CreateThreadRequest(CamelModel):
    initiator_id: str = Field(min_length=1)
    mode: Literal["user", "ai"]
    peer_id: str | None = None


# ── routes ───────────────────────────────────────────────────────────────


@router.get("/users")
async def list_users(runtime: RuntimeDep) -> Response:
    users = await runtime.orchestrator.list_human_users()
    assistant = await runtime.orchestrator.get_assistant_profile()
    return json_response(200, {
        "users": [UserOut.of(u).dump() for u in users],
        "assistant": AssistantOut.of(assistant).dump(),
    })


@router.get("/users/{user_id}/threads")
async def list_user_threads(user_id: str, runtime: RuntimeDep) -> Response:
    threads = await runtime.orchestrator.list_threads_for_user(user_id)
    return json_response(200, {"threads": [ThreadOut.of(t).dump() for t in threads]})


@router.post("/chat/config")
async def chat_config(request: Request, runtime: RuntimeDep) -> Response:
    try:
        body = ChatConfigRequest.model_validate(parse_payload(await request.body()))
    except ValidationError:
        return json_response(400, {"error": "userId and threadId are required"})
    try:
        creds = await runtime.orchestrator.get_chat_credentials(body.user_id, body.thread_id)
    except Exception as exc:
        logger.warning(f"Chat config failed for {body.user_id}/{body.thread_id}: {exc}")
        return json_response(400, {"error": str(exc) or "Failed to create chat adapter config"})
    return json_response(200, {"config": CredentialsOut.of(creds).dump()})


@router.post("/threads")
async def create_thread(request: Request, runtime: RuntimeDep) -> Response:
    try:
        body = CreateThreadRequest.model_validate(parse_payload(await request.body()))
    except ValidationError:
        return json_response(400, {"error": "initiatorId and mode are required"})
    try:
        if body.mode == "ai":
            thread = await runtime.orchestrator.start_ai_conversation(body.initiator_id)
        else:
            thread = await runtime.orchestrator.start_user_conversation(body.initiator_id, body.peer_id or "")
        creds = await runtime.orchestrator.get_chat_credentials(body.initiator_id, thread.id)
    except Exception as exc:
        logger.warning(f"Thread creation failed for {body.initiator_id} ({body.mode}): {exc}")
        return json_response(400, {"error": str(exc) or "Failed to create thread"})
    return json_response(200, {
        "thread": ThreadOut.of(thread).dump(),
        "config": CredentialsOut.of(creds).dump(),
    })
