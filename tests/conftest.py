"""Shared fixtures: a scripted fake of the streaming generation backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from quizcraft.services.stream_decoder import encode_frame, encode_terminator

BASE_URL = "http://backend.test"


def frames(*payloads: dict[str, Any], terminator: bool = True) -> list[str]:
    """Encode payloads as one chunk per frame, optionally closing the stream."""
    chunks = [encode_frame(payload) for payload in payloads]
    if terminator:
        chunks.append(encode_terminator())
    return chunks


def complete(items_key: str, items: list[dict[str, Any]], prompt: str = "") -> dict[str, Any]:
    payload: dict[str, Any] = {"type": "complete", items_key: items, "totalGenerated": len(items)}
    if prompt:
        payload["_metadata"] = {"usedPrompt": prompt}
    return payload


class Hang:
    """Script marker: stall the stream for `seconds`."""

    def __init__(self, seconds: float):
        self.seconds = seconds


class FakeGenerationBackend:
    """Callable handler for httpx.MockTransport.

    `responder(path, body)` returns one of:
      - an int: respond with that (non-success) status and no stream
      - an Exception: raise it while sending the request
      - a list of chunks (str/bytes/Hang/Exception) to stream back
    """

    def __init__(self, responder: Callable[[str, dict[str, Any]], Any]):
        self.responder = responder
        self.requests: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.url.path, body))
        script = self.responder(request.url.path, body)
        if isinstance(script, Exception):
            raise script
        if isinstance(script, int):
            return httpx.Response(script, json={"error": "rejected"})
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=self._stream(script),
        )

    @staticmethod
    async def _stream(chunks: list[Any]):
        for chunk in chunks:
            await asyncio.sleep(0)
            if isinstance(chunk, Hang):
                await asyncio.sleep(chunk.seconds)
                continue
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk

    def bodies(self, path: str | None = None) -> list[dict[str, Any]]:
        return [body for p, body in self.requests if path is None or p == path]


@pytest.fixture
def make_client():
    """Build an AsyncClient wired to a FakeGenerationBackend."""

    def _factory(responder: Callable[[str, dict[str, Any]], Any]) -> tuple[httpx.AsyncClient, FakeGenerationBackend]:
        backend = FakeGenerationBackend(responder)
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend), base_url=BASE_URL)
        return client, backend

    return _factory
