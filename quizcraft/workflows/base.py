from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Iterable

import httpx

from quizcraft.config import settings
from quizcraft.models.jobs import AggregateBatch, JobDescriptor
from quizcraft.models.schemas import GeneratedItem, GenerationRequest, GenerationResponse
from quizcraft.services import logger as log_service
from quizcraft.services.aggregator import aggregate, merge_collections, summarize_groups
from quizcraft.services.fan_out import BatchError, FanOutCoordinator
from quizcraft.services.progress import ProgressTracker
from quizcraft.services.task_runner import StreamTaskRunner
from quizcraft.services.two_stage import UpdateCallback, notify


def distinct_keys(keys: list[str]) -> list[str]:
    """Number repeated keys by occurrence: `[a, b, a]` -> `[a_1, b, a_2]`."""
    repeats = Counter(keys)
    seen: Counter[str] = Counter()
    result: list[str] = []
    for key in keys:
        if repeats[key] == 1:
            result.append(key)
            continue
        seen[key] += 1
        result.append(f"{key}_{seen[key]}")
    return result


class OutcomeStatus(StrEnum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass(slots=True)
class GenerationOutcome:
    """What a caller gets back from one generation action."""

    workflow: str
    batch: AggregateBatch
    items: list[GeneratedItem] = field(default_factory=list)
    new_items: list[GeneratedItem] = field(default_factory=list)

    @property
    def status(self) -> OutcomeStatus:
        if self.batch.all_failed:
            return OutcomeStatus.FAILED
        if self.batch.failure_count:
            return OutcomeStatus.PARTIAL
        return OutcomeStatus.COMPLETE

    @property
    def message(self) -> str:
        if self.status is OutcomeStatus.FAILED:
            return f"All {self.batch.total} {self.workflow} jobs failed"
        return f"{self.batch.success_count} of {self.batch.total} {self.workflow} jobs succeeded"

    def to_response(self) -> GenerationResponse:
        return GenerationResponse(
            workflow=self.workflow,
            status=self.status.value,
            message=self.message,
            success_count=self.batch.success_count,
            failure_count=self.batch.failure_count,
            first_prompt=self.batch.first_prompt,
            items=[item.to_payload() for item in self.items],
            new_item_count=len(self.new_items),
            groups=summarize_groups(self.new_items),
            errors=dict(self.batch.errors),
        )


class GenerationWorkflow:
    """Shared fan-out flow; subclasses only describe their jobs.

    Subclasses set `name`, `items_key` and `stream_path` and implement
    `build_descriptors`.
    """

    name: str = "base"
    items_key: str | None = None
    stream_path: str = ""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        tracker: ProgressTracker | None = None,
        base_url: str | None = None,
        max_parallel: int | None = None,
        job_timeout: float | None = None,
    ):
        self.client = client
        self.tracker = tracker or ProgressTracker()
        self.base_url = base_url or settings.generation_base_url
        self.max_parallel = settings.max_parallel_jobs if max_parallel is None else max_parallel
        self.job_timeout = settings.job_timeout_seconds if job_timeout is None else job_timeout

    def endpoint(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def coordinator(self, path: str, items_key: str | None, name: str) -> FanOutCoordinator:
        runner = StreamTaskRunner(
            self.client,
            self.endpoint(path),
            tracker=self.tracker,
            items_key=items_key,
            timeout=self.job_timeout,
        )
        return FanOutCoordinator(runner, max_parallel=self.max_parallel, name=name)

    @staticmethod
    def model_for(request: GenerationRequest) -> str:
        return request.model or settings.default_model

    def build_descriptors(self, request: GenerationRequest) -> list[JobDescriptor]:
        raise NotImplementedError

    def _descriptors(self, request: GenerationRequest) -> list[JobDescriptor]:
        try:
            descriptors = self.build_descriptors(request)
        except BatchError:
            raise
        except Exception as e:
            raise BatchError(f"Failed to build {self.name} jobs: {e}") from e
        if not descriptors:
            raise BatchError(f"No {self.name} jobs selected")
        return descriptors

    async def generate(
        self,
        request: GenerationRequest,
        *,
        existing: Iterable[GeneratedItem] = (),
        on_update: UpdateCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        existing = list(existing)
        descriptors = self._descriptors(request)
        log_service.log_batch(self.name, "requested", jobs=len(descriptors), existing=len(existing))

        results = await self.coordinator(self.stream_path, self.items_key, self.name).run_all(
            descriptors, abort=abort
        )
        batch = aggregate(results)
        return await self._finish(batch, existing, on_update)

    async def _finish(
        self,
        batch: AggregateBatch,
        existing: list[GeneratedItem],
        on_update: UpdateCallback | None,
    ) -> GenerationOutcome:
        if batch.all_failed:
            outcome = GenerationOutcome(self.name, batch, items=existing, new_items=[])
        else:
            merged = merge_collections(existing, batch.items)
            new_items = merged[len(existing):]
            batch.items = new_items
            outcome = GenerationOutcome(self.name, batch, items=merged, new_items=new_items)
            await notify(on_update, merged, batch.first_prompt, False)

        log_service.log_batch(
            self.name,
            outcome.status.value,
            message=outcome.message,
            new_items=len(outcome.new_items),
            total_items=len(outcome.items),
        )
        return outcome
