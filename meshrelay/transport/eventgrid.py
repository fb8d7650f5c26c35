"""Minimal Event Grid topic publisher (Event Grid schema, SAS key auth)."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger


class EventGridError(RuntimeError):
    """Publishing to the topic failed."""


def build_event(event_type: str, subject: str, data: dict[str, Any], data_version: str = "1.0") -> dict[str, Any]:
    return {
        "id": str(uuid.uuid4()),
        "eventType": event_type,
        "subject": subject,
        "dataVersion": data_version,
        "data": data,
        "eventTime": datetime.now(tz=UTC).isoformat(),
    }


class EventGridPublisher:
    def __init__(self, endpoint: str, key: str, http: httpx.AsyncClient | None = None) -> None:
        self._endpoint = endpoint
        self._key = key
        self._http = http or httpx.AsyncClient(timeout=15.0)
        self._owns_http = http is None

    async def send(self, events: list[dict[str, Any]]) -> None:
        resp = await self._http.post(
            self._endpoint,
            json=events,
            headers={"aeg-sas-key": self._key, "Content-Type": "application/json"},
        )
        if resp.status_code >= 400:
            raise EventGridError(f"HTTP {resp.status_code}: {resp.text[:300]}")
        logger.debug(f"Published {len(events)} event(s) to Event Grid")

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
