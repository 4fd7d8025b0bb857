from __future__ import annotations

from typing import Any

from quizcraft.models.events import EventType, SSEEvent
from quizcraft.models.jobs import ProgressEntry
from quizcraft.models.schemas import GeneratedItem
from quizcraft.services.progress import ProgressSummary
from quizcraft.workflows.base import GenerationOutcome


def batch_started(workflow: str, **kwargs: Any) -> SSEEvent:
    return SSEEvent(event=EventType.BATCH_STARTED, data={"workflow": workflow, **kwargs})


def job_progress(key: str, entry: ProgressEntry, summary: ProgressSummary) -> SSEEvent:
    """Emit one job's progress together with the batch-wide aggregate."""
    return SSEEvent(
        event=EventType.JOB_PROGRESS,
        data={
            "key": key,
            "percent": entry.percent,
            "status": entry.status,
            **summary.to_dict(),
        },
    )


def intermediate_result(items: list[GeneratedItem], used_prompt: str | None) -> SSEEvent:
    data: dict[str, Any] = {"items": [item.to_payload() for item in items]}
    if used_prompt:
        data["usedPrompt"] = used_prompt
    return SSEEvent(event=EventType.INTERMEDIATE_RESULT, data=data)


def batch_complete(outcome: GenerationOutcome) -> SSEEvent:
    return SSEEvent(
        event=EventType.BATCH_COMPLETE,
        data=outcome.to_response().model_dump(by_alias=True),
    )


def error(message: str, workflow: str | None = None) -> SSEEvent:
    data: dict[str, Any] = {"message": message}
    if workflow:
        data["workflow"] = workflow
    return SSEEvent(event=EventType.ERROR, data=data)
