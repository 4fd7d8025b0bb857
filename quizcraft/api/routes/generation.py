from __future__ import annotations

import asyncio

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse

from quizcraft.api import deps
from quizcraft.models.events import SSEEvent
from quizcraft.models.schemas import (
    ComprehensiveRequest,
    GeneratedItem,
    GenerationRequest,
    ParagraphRequest,
    VocabularyRequest,
)
from quizcraft.services import logger as log_service
from quizcraft.services import streaming
from quizcraft.services.fan_out import BatchError
from quizcraft.services.progress import ProgressTracker
from quizcraft.workflows.catalog import get_workflow

router = APIRouter(prefix="/api/generation", tags=["generation"])


def _stream_generation(name: str, request: GenerationRequest) -> EventSourceResponse:
    """Run one workflow and stream its progress as server-sent events."""
    workflow_cls, _ = get_workflow(name)

    async def event_generator():
        queue: asyncio.Queue[SSEEvent | None] = asyncio.Queue()
        tracker = ProgressTracker()
        unsubscribe = tracker.subscribe(
            lambda key, entry, summary: queue.put_nowait(
                streaming.job_progress(key, entry, summary)
            )
        )
        workflow = workflow_cls(deps.get_http_client(), tracker=tracker)

        def on_update(items: list[GeneratedItem], used_prompt: str | None, intermediate: bool) -> None:
            if intermediate:
                queue.put_nowait(streaming.intermediate_result(items, used_prompt))

        async def run():
            try:
                return await workflow.generate(
                    request,
                    existing=request.existing_items,
                    on_update=on_update,
                )
            finally:
                queue.put_nowait(None)

        log_service.log_event(
            event_type="generation_started",
            message="Generation stream started",
            workflow=name,
            existing=len(request.existing_items),
        )
        task = asyncio.create_task(run())
        try:
            yield streaming.batch_started(name).to_message()
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event.to_message()
            outcome = await task
            yield streaming.batch_complete(outcome).to_message()
        except BatchError as e:
            log_service.log_event(
                event_type="batch_error",
                message="Generation batch aborted",
                workflow=name,
                error=str(e),
            )
            yield streaming.error(str(e), workflow=name).to_message()
        except Exception as e:
            log_service.log_event(
                event_type="stream_error",
                message="Unhandled error in generation stream",
                workflow=name,
                error=str(e),
            )
            yield streaming.error("Generation stream failed unexpectedly.", workflow=name).to_message()
        finally:
            unsubscribe()
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())


@router.post("/vocabulary")
async def generate_vocabulary(request: VocabularyRequest):
    """Generate vocabulary questions for every term x question type."""
    return _stream_generation("vocabulary", request)


@router.post("/paragraph")
async def generate_paragraph(request: ParagraphRequest):
    """Generate paragraph questions for every selected paragraph x question type."""
    return _stream_generation("paragraph", request)


@router.post("/comprehensive")
async def generate_comprehensive(request: ComprehensiveRequest):
    """Generate basic comprehensive questions, then their supplementary questions."""
    return _stream_generation("comprehensive", request)
