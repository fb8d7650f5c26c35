"""Streaming client for the generation backend.

The backend answers a POST with a chunked body of newline-delimited
``data:`` frames.  Content frames are concatenated in arrival order;
metadata and control frames (``data:metadata``, ``run_id`` envelopes,
unrecognised JSON shapes) are dropped.
"""

from __future__ import annotations

import codecs
import json
import re
from typing import Any

import httpx
from loguru import logger

DATA_PREFIX = "data:"
METADATA_PREFIX = "data:metadata"

_LINE_SPLIT = re.compile(r"\r?\n")


class StreamError(RuntimeError):
    """Backend refused the request or sent no body."""


def parse_stream_frame(raw: str) -> str | None:
    """Classify one frame payload; return its content or ``None`` to discard."""
    trimmed = raw.strip()
    if not trimmed or trimmed.startswith(METADATA_PREFIX):
        return None

    try:
        parsed: Any = json.loads(trimmed)
    except ValueError:
        parsed = None
    else:
        if isinstance(parsed, str):
            return None if parsed.startswith(METADATA_PREFIX) else parsed
        if isinstance(parsed, dict):
            if "run_id" in parsed:
                return None
            for key in ("content", "text"):
                if isinstance(parsed.get(key), str):
                    return parsed[key]
            return None
        if isinstance(parsed, list):
            return None

    # Malformed JSON-looking payloads are control frames, never transcript text.
    if trimmed.startswith(("{", "[")):
        return None
    return trimmed


class StreamAssembler:
    """Incremental line decoder that assembles reply text from byte chunks."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""
        self.assembled = ""

    def feed(self, chunk: bytes) -> None:
        self.buffer += self._decoder.decode(chunk)
        lines = _LINE_SPLIT.split(self.buffer)
        self.buffer = lines.pop()
        for line in lines:
            self._consume_line(line)

    def _consume_line(self, line: str) -> None:
        if not line.startswith(DATA_PREFIX) or line.startswith(METADATA_PREFIX):
            return
        payload = line[len(DATA_PREFIX):].strip()
        if not payload:
            return
        fragment = parse_stream_frame(payload)
        if fragment:
            self.assembled += fragment

    def finish(self) -> str | None:
        """Close the decoder; an unterminated trailing fragment is discarded."""
        self.buffer += self._decoder.decode(b"", final=True)
        text = self.assembled.strip()
        return text or None


class StreamingBackendClient:
    """POST user text to the backend and assemble the streamed reply."""

    def __init__(
        self,
        url: str,
        timeout: float = 120.0,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._owns_http = http is None

    @staticmethod
    def build_request_body(content: str) -> dict[str, Any]:
        return {"input": {"content": content}, "config": {}, "kwargs": {}}

    async def stream_reply(self, content: str) -> str | None:
        """Return the assembled reply, or ``None`` on empty output or any failure."""
        assembler = StreamAssembler()
        try:
            async with self._http.stream(
                "POST",
                self._url,
                json=self.build_request_body(content),
                headers={"accept": "application/json"},
            ) as response:
                if not response.is_success:
                    raise StreamError(f"Backend responded with {response.status_code}")
                async for chunk in response.aiter_bytes():
                    assembler.feed(chunk)
        except Exception as exc:
            logger.error(f"Failed streaming backend reply: {exc}")
            return None
        reply = assembler.finish()
        logger.debug(f"Backend reply assembled: {len(reply or '')} chars")
        return reply

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
