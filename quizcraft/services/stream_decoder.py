"""Incremental decoder for the generation backend's line-framed event stream.

Wire format, one frame per line:

    data: {"type": "start", ...}
    data: {"type": "progress", "totalChars": 1234}
    data: {"type": "complete", "<kind>Questions": [...], "_metadata": {"usedPrompt": "..."}}
    data: {"type": "error", "error": "..."}
    data: {"type": "done"}        (or the literal ``data: [DONE]``)

Blank lines between frames, non-``data:`` lines and frames that are not valid
JSON are ignored. Frames are only parsed once their terminating newline has
arrived, so transport chunk boundaries never affect the decoded sequence.
"""
from __future__ import annotations

import codecs
import json
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Iterator

from quizcraft.models.events import DecodedEvent, FrameType
from quizcraft.services.logger import logger

FRAME_PREFIX = "data:"
TERMINATOR = "[DONE]"
DONE_TYPE = "done"

# Keys a `complete` frame may carry its items under when no key is configured.
DEFAULT_ITEM_KEYS = ("items", "questions")

_END = object()


def encode_frame(payload: dict[str, Any]) -> str:
    return f"{FRAME_PREFIX} {json.dumps(payload, ensure_ascii=False)}\n\n"


def encode_terminator() -> str:
    return f"{FRAME_PREFIX} {TERMINATOR}\n\n"


def _extract_items(payload: dict[str, Any], items_key: str | None) -> list[Any]:
    if items_key is not None and isinstance(payload.get(items_key), list):
        return payload[items_key]
    for key in DEFAULT_ITEM_KEYS:
        if isinstance(payload.get(key), list):
            return payload[key]
    # e.g. vocabularyQuestions / paragraphQuestions / comprehensiveQuestions
    for key, value in payload.items():
        if key.endswith("Questions") and isinstance(value, list):
            return value
    return []


def _extract_prompt(payload: dict[str, Any]) -> str:
    metadata = payload.get("_metadata")
    if isinstance(metadata, dict) and isinstance(metadata.get("usedPrompt"), str):
        return metadata["usedPrompt"]
    value = payload.get("usedPrompt")
    return value if isinstance(value, str) else ""


def _to_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def event_from_payload(payload: dict[str, Any], items_key: str | None = None) -> DecodedEvent | None:
    """Map one decoded frame payload to a DecodedEvent; None for unknown types."""
    frame_type = payload.get("type")
    if frame_type == FrameType.START.value:
        return DecodedEvent(kind=FrameType.START, message=str(payload.get("message") or ""))
    if frame_type == FrameType.PROGRESS.value:
        chars = payload.get("totalChars", payload.get("charsSoFar", 0))
        return DecodedEvent(kind=FrameType.PROGRESS, chars_so_far=_to_int(chars))
    if frame_type == FrameType.COMPLETE.value:
        return DecodedEvent(
            kind=FrameType.COMPLETE,
            items=list(_extract_items(payload, items_key)),
            raw_prompt=_extract_prompt(payload),
        )
    if frame_type == FrameType.ERROR.value:
        message = payload.get("error") or payload.get("message") or "unknown backend error"
        return DecodedEvent(kind=FrameType.ERROR, message=str(message))
    return None


class StreamDecoder:
    """Stateful decoder owned by exactly one job.

    Feed it text or byte chunks in arrival order; each call returns the events
    completed by that chunk. Once the terminator is seen the decoder is closed
    and further input is ignored.
    """

    def __init__(self, items_key: str | None = None, *, encoding: str = "utf-8"):
        self.items_key = items_key
        self._buffer = ""
        self._closed = False
        self._bytes = codecs.getincrementaldecoder(encoding)(errors="replace")

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: str | bytes) -> list[DecodedEvent]:
        if self._closed:
            return []
        if isinstance(chunk, bytes):
            chunk = self._bytes.decode(chunk)
        self._buffer += chunk
        segments = self._buffer.split("\n")
        # The last segment may still be completed by the next chunk.
        self._buffer = segments.pop()
        return self._drain(segments)

    def finish(self) -> list[DecodedEvent]:
        """Flush at end of input; the held-back segment can no longer grow."""
        if self._closed:
            return []
        tail = self._buffer + self._bytes.decode(b"", final=True)
        self._buffer = ""
        events = self._drain([tail])
        self._closed = True
        return events

    def _drain(self, segments: list[str]) -> list[DecodedEvent]:
        events: list[DecodedEvent] = []
        for segment in segments:
            parsed = self._parse_segment(segment)
            if parsed is _END:
                self._closed = True
                self._buffer = ""
                break
            if parsed is not None:
                events.append(parsed)
        return events

    def _parse_segment(self, segment: str) -> Any:
        line = segment.rstrip("\r")
        if not line.startswith(FRAME_PREFIX):
            return None
        body = line[len(FRAME_PREFIX):].strip()
        if body == TERMINATOR:
            return _END
        try:
            payload = json.loads(body)
        except ValueError:
            logger.debug(f"Skipping undecodable frame: {body[:80]!r}")
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("type") == DONE_TYPE:
            return _END
        return event_from_payload(payload, self.items_key)

    def iter_events(self, chunks: Iterable[str | bytes]) -> Iterator[DecodedEvent]:
        for chunk in chunks:
            yield from self.feed(chunk)
            if self._closed:
                return
        yield from self.finish()

    async def decode(self, chunks: AsyncIterable[str | bytes]) -> AsyncIterator[DecodedEvent]:
        """Lazily decode an async chunk source, e.g. ``response.aiter_text()``."""
        async for chunk in chunks:
            for event in self.feed(chunk):
                yield event
            if self._closed:
                return
        for event in self.finish():
            yield event
