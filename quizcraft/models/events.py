from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FrameType(str, Enum):
    """`type` discriminator of frames sent by the generation backend."""

    START = "start"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(slots=True)
class DecodedEvent:
    kind: FrameType
    chars_so_far: int = 0
    items: list[Any] = field(default_factory=list)
    raw_prompt: str = ""
    message: str = ""


class EventType(str, Enum):
    """Events this service streams to its own callers."""

    BATCH_STARTED = "batch_started"
    JOB_PROGRESS = "job_progress"
    INTERMEDIATE_RESULT = "intermediate_result"
    BATCH_COMPLETE = "batch_complete"
    ERROR = "error"


@dataclass
class SSEEvent:
    event: EventType
    data: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, str]:
        return {
            "event": self.event.value,
            "data": json.dumps(self.data, ensure_ascii=False),
        }
