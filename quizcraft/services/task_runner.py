from __future__ import annotations

import asyncio
from contextlib import aclosing

import httpx
from pydantic import ValidationError

from quizcraft.config import settings
from quizcraft.models.events import FrameType
from quizcraft.models.jobs import JobDescriptor, JobResult
from quizcraft.models.schemas import GeneratedItem
from quizcraft.services import logger as log_service
from quizcraft.services.logger import logger
from quizcraft.services.progress import ProgressTracker
from quizcraft.services.stream_decoder import StreamDecoder

STREAMING_PERCENT = 10
STARTED_PERCENT = 15


class JobFailure(Exception):
    """A failure confined to one job; always turned into a failed JobResult."""

    kind = "job_failure"
    status = "failed"


class TransportFailure(JobFailure):
    kind = "transport"


class StreamReadFailure(JobFailure):
    kind = "stream_read"


class ExplicitBackendError(JobFailure):
    kind = "backend_error"
    status = "error"


class SilentExhaustion(JobFailure):
    kind = "silent_exhaustion"


class MalformedPayload(JobFailure):
    kind = "malformed_payload"


class JobTimedOut(JobFailure):
    kind = "timeout"
    status = "timeout"


class JobAborted(JobFailure):
    kind = "aborted"
    status = "aborted"


class StreamTaskRunner:
    """Runs one generation job: request, decode the stream, report progress.

    `run` never raises for job-level problems; they come back as
    `JobResult(success=False)`. Cancellation of the surrounding task still
    propagates.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        tracker: ProgressTracker | None = None,
        items_key: str | None = None,
        timeout: float | None = None,
        base_percent: int | None = None,
        chars_per_percent: int | None = None,
        max_streaming_percent: int | None = None,
    ):
        self.client = client
        self.url = url
        self.tracker = tracker or ProgressTracker()
        self.items_key = items_key
        self.timeout = timeout if timeout and timeout > 0 else None
        self.base_percent = settings.progress_base_percent if base_percent is None else base_percent
        self.chars_per_percent = max(
            chars_per_percent or settings.progress_chars_per_percent, 1
        )
        self.max_streaming_percent = (
            settings.progress_max_streaming_percent
            if max_streaming_percent is None
            else max_streaming_percent
        )

    def progress_percent(self, chars_so_far: int) -> int:
        computed = self.base_percent + chars_so_far // self.chars_per_percent
        return max(0, min(self.max_streaming_percent, computed))

    async def run(self, descriptor: JobDescriptor, *, abort: asyncio.Event | None = None) -> JobResult:
        key = descriptor.key
        self.tracker.update(key, 0, "pending")
        log_service.log_job(key, "pending", url=self.url)
        try:
            result = await self._guarded(descriptor, abort)
        except JobFailure as e:
            self.tracker.update(key, 0, e.status)
            log_service.log_job(key, e.status, kind=e.kind, error=str(e))
            return JobResult.failed(key, str(e), kind=e.kind)
        except Exception as e:
            logger.exception(f"Unexpected failure in job {key}")
            self.tracker.update(key, 0, "failed")
            return JobResult.failed(key, f"Unexpected error: {e}", kind="unexpected")

        log_service.log_job(
            key,
            "done",
            items=len(result.items),
            prompt_chars=len(result.raw_prompt),
        )
        return result

    async def _guarded(self, descriptor: JobDescriptor, abort: asyncio.Event | None) -> JobResult:
        if abort is not None and abort.is_set():
            raise JobAborted("Batch aborted before the job started")
        if abort is None and self.timeout is None:
            return await self._execute(descriptor)

        task = asyncio.ensure_future(self._execute(descriptor))
        abort_waiter = asyncio.ensure_future(abort.wait()) if abort is not None else None
        waiters = {task} if abort_waiter is None else {task, abort_waiter}
        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=self.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            task.cancel()
            if abort_waiter is not None:
                abort_waiter.cancel()
            raise
        if abort_waiter is not None and not abort_waiter.done():
            abort_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if abort_waiter is not None and abort_waiter in done:
            raise JobAborted("Batch aborted")
        raise JobTimedOut(f"Job exceeded {self.timeout}s")

    async def _execute(self, descriptor: JobDescriptor) -> JobResult:
        key = descriptor.key
        try:
            async with self.client.stream("POST", self.url, json=descriptor.request_body()) as response:
                if not response.is_success:
                    raise TransportFailure(f"HTTP error! status: {response.status_code}")
                self.tracker.update(key, STREAMING_PERCENT, "streaming")
                return await self._consume(descriptor, response)
        except httpx.HTTPError as e:
            raise TransportFailure(f"Request failed: {e}") from e

    async def _consume(self, descriptor: JobDescriptor, response: httpx.Response) -> JobResult:
        key = descriptor.key
        decoder = StreamDecoder(self.items_key)
        percent = STREAMING_PERCENT
        try:
            async with aclosing(decoder.decode(response.aiter_text())) as events:
                async for event in events:
                    if event.kind is FrameType.START:
                        percent = max(percent, STARTED_PERCENT)
                        self.tracker.update(key, percent, "started")
                    elif event.kind is FrameType.PROGRESS:
                        percent = max(percent, self.progress_percent(event.chars_so_far))
                        self.tracker.update(key, percent, f"streaming({event.chars_so_far} chars)")
                    elif event.kind is FrameType.COMPLETE:
                        items = self._build_items(descriptor, event.items)
                        self.tracker.update(key, 100, f"done({len(items)} items)")
                        return JobResult(
                            key=key,
                            success=True,
                            items=items,
                            raw_prompt=event.raw_prompt,
                        )
                    elif event.kind is FrameType.ERROR:
                        raise ExplicitBackendError(event.message)
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise StreamReadFailure(f"Stream read failed: {e}") from e
        raise SilentExhaustion("Stream ended without a complete or error event")

    def _build_items(self, descriptor: JobDescriptor, raw_items: list) -> list[GeneratedItem]:
        items: list[GeneratedItem] = []
        for index, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise MalformedPayload(f"Item {index} is not an object")
            try:
                item = GeneratedItem.model_validate(raw)
            except ValidationError as e:
                raise MalformedPayload(f"Item {index} is invalid: {e}") from e
            if not item.group_key:
                item.group_key = descriptor.group_key or descriptor.key
            if descriptor.parent_id is None:
                # Only dependent jobs may produce linked items.
                item.is_supplementary = False
                item.parent_id = None
            items.append(item)
        return items
