from __future__ import annotations

import httpx

from quizcraft.config import settings

_http_client: httpx.AsyncClient | None = None


def get_available_models() -> list[str]:
    """Return the model identifiers a request may ask for."""
    return settings.model_list


def build_http_client() -> httpx.AsyncClient:
    # Streams may legitimately run for minutes, so only connecting is bounded.
    return httpx.AsyncClient(
        timeout=httpx.Timeout(None, connect=settings.http_connect_timeout),
    )


def get_http_client() -> httpx.AsyncClient:
    """Get or create the shared client for the generation backend."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = build_http_client()
    return _http_client


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
