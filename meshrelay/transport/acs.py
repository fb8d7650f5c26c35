"""AcsTransport – async Azure Communication Services REST client.

Self-contained HMAC-SHA256 request signing for the identity API (no
third-party SDK dependency); chat API calls carry the user's bearer token.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import uuid
from datetime import datetime
from email.utils import formatdate
from typing import Any
from urllib.parse import quote, urlsplit

import httpx
from loguru import logger

from meshrelay.settings import ConfigurationError, RelaySettings, get_settings
from meshrelay.transport.base import ChatTransport, IssuedToken, ThreadParticipant


class AcsError(RuntimeError):
    """Wrapper for all ACS API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def parse_connection_string(connection_string: str) -> tuple[str, str]:
    """Split ``endpoint=...;accesskey=...`` into ``(endpoint, access_key)``."""
    values: dict[str, str] = {}
    for part in filter(None, connection_string.split(";")):
        key, _, value = part.partition("=")
        values[key.strip().lower()] = value.strip()
    endpoint = values.get("endpoint")
    if not endpoint:
        raise ConfigurationError("Connection string missing endpoint")
    return endpoint.rstrip("/"), values.get("accesskey", "")


def _segment(value: str) -> str:
    return quote(value, safe="")


class AcsTransport(ChatTransport):
    """Async gateway to the ACS identity and chat REST APIs."""

    def __init__(
        self,
        connection_string: str | None = None,
        settings: RelaySettings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        s = settings or get_settings()
        self._connection_string = connection_string or s.acs_connection_string
        self._parsed: tuple[str, str] | None = None
        self._chat_version = s.acs_chat_api_version
        self._identity_version = s.acs_identity_api_version
        self._http = http or httpx.AsyncClient(timeout=s.acs_timeout_seconds)
        self._owns_http = http is None

    def _resolve(self) -> tuple[str, str]:
        if self._parsed is None:
            if not self._connection_string:
                raise ConfigurationError("MESHRELAY_ACS_CONNECTION_STRING is not configured")
            self._parsed = parse_connection_string(self._connection_string)
        return self._parsed

    @property
    def endpoint_url(self) -> str:
        return self._resolve()[0]

    # ── low-level requests ───────────────────────────────────────────────

    def _signed_headers(self, method: str, path_and_query: str, content: bytes) -> dict[str, str]:
        endpoint, access_key = self._resolve()
        if not access_key:
            raise ConfigurationError("Connection string missing accesskey")
        date = formatdate(usegmt=True)
        content_hash = base64.b64encode(hashlib.sha256(content).digest()).decode("utf-8")
        string_to_sign = f"{method.upper()}\n{path_and_query}\n{date};{urlsplit(endpoint).netloc};{content_hash}"
        signature = base64.b64encode(
            hmac.new(
                base64.b64decode(access_key),
                string_to_sign.encode("utf-8"),
                hashlib.sha256,
            ).digest()
        ).decode("utf-8")
        return {
            "x-ms-date": date,
            "x-ms-content-sha256": content_hash,
            "Authorization": f"HMAC-SHA256 SignedHeaders=x-ms-date;host;x-ms-content-sha256&Signature={signature}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        api_version: str,
        body: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> dict[str, Any]:
        path_and_query = f"{path}?api-version={api_version}"
        content = json.dumps(body, separators=(",", ":")).encode("utf-8") if body is not None else b""
        headers: dict[str, str] = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            headers.update(self._signed_headers(method, path_and_query, content))
        if method.upper() == "POST":
            headers["repeatability-request-id"] = str(uuid.uuid4())

        resp = await self._http.request(
            method, f"{self.endpoint_url}{path_and_query}", content=content or None, headers=headers
        )
        if resp.status_code >= 400:
            raise AcsError(f"HTTP {resp.status_code}: {resp.text[:500]}", status_code=resp.status_code)
        if not resp.content:
            return {}
        data = resp.json()
        if not isinstance(data, dict):
            raise AcsError("unexpected response shape")
        return data

    # ── identity ─────────────────────────────────────────────────────────

    async def create_identity(self) -> str:
        data = await self._request("POST", "/identities", api_version=self._identity_version, body={})
        user_id = (data.get("identity") or {}).get("id")
        if not user_id:
            raise AcsError("identity response missing id")
        logger.debug(f"Created ACS identity {user_id}")
        return user_id

    async def issue_token(self, user_id: str, scopes: tuple[str, ...] = ("chat",)) -> IssuedToken:
        data = await self._request(
            "POST",
            f"/identities/{_segment(user_id)}/:issueAccessToken",
            api_version=self._identity_version,
            body={"scopes": list(scopes)},
        )
        token, expires_on = data.get("token"), data.get("expiresOn")
        if not token or not expires_on:
            raise AcsError("token response missing token or expiresOn")
        return IssuedToken(token=token, expires_on=datetime.fromisoformat(expires_on))

    # ── chat ─────────────────────────────────────────────────────────────

    async def create_thread(self, token: str, topic: str, participants: list[ThreadParticipant]) -> str:
        body = {
            "topic": topic,
            "participants": [
                {
                    "communicationIdentifier": {"rawId": p.user_id, "communicationUser": {"id": p.user_id}},
                    "displayName": p.display_name,
                }
                for p in participants
            ],
        }
        data = await self._request("POST", "/chat/threads", api_version=self._chat_version, body=body, token=token)
        thread_id = (data.get("chatThread") or {}).get("id")
        if not thread_id:
            raise AcsError("Failed to create chat thread in ACS")
        return thread_id

    async def send_message(
        self,
        token: str,
        thread_id: str,
        content: str,
        sender_display_name: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        body: dict[str, Any] = {"content": content, "senderDisplayName": sender_display_name, "type": "text"}
        if metadata:
            body["metadata"] = metadata
        data = await self._request(
            "POST",
            f"/chat/threads/{_segment(thread_id)}/messages",
            api_version=self._chat_version,
            body=body,
            token=token,
        )
        return str(data.get("id", ""))

    async def get_message(self, token: str, thread_id: str, message_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            f"/chat/threads/{_segment(thread_id)}/messages/{_segment(message_id)}",
            api_version=self._chat_version,
            token=token,
        )

    async def send_typing(self, token: str, thread_id: str) -> None:
        await self._request(
            "POST",
            f"/chat/threads/{_segment(thread_id)}/typing",
            api_version=self._chat_version,
            body={},
            token=token,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
