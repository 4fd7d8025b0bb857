from __future__ import annotations

import asyncio
from typing import Iterable

from quizcraft.models.jobs import JobDescriptor, JobResult
from quizcraft.services import logger as log_service
from quizcraft.services.task_runner import StreamTaskRunner


class BatchError(Exception):
    """A failure outside any single job that aborts the whole batch."""


def ensure_unique_keys(descriptors: list[JobDescriptor]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []
    for descriptor in descriptors:
        if descriptor.key in seen:
            duplicates.append(descriptor.key)
        seen.add(descriptor.key)
    if duplicates:
        raise BatchError(f"Duplicate job keys in batch: {', '.join(sorted(set(duplicates)))}")


class FanOutCoordinator:
    """Runs one StreamTaskRunner invocation per descriptor, all at once.

    There is no concurrency cap unless `max_parallel` is given. Results come
    back in descriptor order regardless of completion order, and a failed job
    never cancels its siblings.
    """

    def __init__(self, runner: StreamTaskRunner, *, max_parallel: int | None = None, name: str = "batch"):
        self.runner = runner
        self.max_parallel = max_parallel if max_parallel and max_parallel > 0 else None
        self.name = name

    @property
    def tracker(self):
        return self.runner.tracker

    async def run_all(
        self,
        descriptors: Iterable[JobDescriptor],
        *,
        abort: asyncio.Event | None = None,
    ) -> list[JobResult]:
        descriptors = list(descriptors)
        ensure_unique_keys(descriptors)
        if not descriptors:
            return []

        # Every job is visible as pending before any of them is scheduled.
        for descriptor in descriptors:
            self.tracker.update(descriptor.key, 0, "pending")

        log_service.log_batch(
            self.name,
            "started",
            jobs=len(descriptors),
            max_parallel=self.max_parallel,
        )
        semaphore = asyncio.Semaphore(self.max_parallel) if self.max_parallel else None

        async def run_one(descriptor: JobDescriptor) -> JobResult:
            if semaphore is None:
                return await self.runner.run(descriptor, abort=abort)
            async with semaphore:
                return await self.runner.run(descriptor, abort=abort)

        raw_results = await asyncio.gather(
            *(run_one(descriptor) for descriptor in descriptors),
            return_exceptions=True,
        )

        results: list[JobResult] = []
        for descriptor, item in zip(descriptors, raw_results):
            if isinstance(item, BaseException):
                # The runner captures job failures itself; this only catches bugs.
                self.tracker.update(descriptor.key, 0, "failed")
                log_service.log_job(descriptor.key, "failed", kind="unexpected", error=str(item))
                results.append(JobResult.failed(descriptor.key, str(item), kind="unexpected"))
                continue
            results.append(item)

        succeeded = sum(1 for r in results if r.success)
        log_service.log_batch(
            self.name,
            "finished",
            jobs=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )
        return results
