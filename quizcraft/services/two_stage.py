from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, Iterable

from quizcraft.models.jobs import AggregateBatch, JobDescriptor
from quizcraft.models.schemas import GeneratedItem
from quizcraft.services import logger as log_service
from quizcraft.services.aggregator import aggregate, link_to_parent, repair_identities
from quizcraft.services.fan_out import BatchError, FanOutCoordinator

UpdateCallback = Callable[[list[GeneratedItem], str | None, bool], Awaitable[None] | None]
ChildBuilder = Callable[[GeneratedItem], JobDescriptor]


async def notify(
    on_update: UpdateCallback | None,
    items: list[GeneratedItem],
    used_prompt: str | None,
    intermediate: bool,
) -> None:
    if on_update is None:
        return
    outcome: Any = on_update(list(items), used_prompt or None, intermediate)
    if inspect.isawaitable(outcome):
        await outcome


class StageState(StrEnum):
    IDLE = "idle"
    STAGE1_RUNNING = "stage1_running"
    STAGE2_RUNNING = "stage2_running"
    DONE = "done"
    ERROR = "error"


@dataclass(slots=True)
class TwoStageResult:
    state: StageState
    basic: AggregateBatch
    supplementary: AggregateBatch | None
    items: list[GeneratedItem]

    @property
    def first_prompt(self) -> str:
        if self.basic.first_prompt:
            return self.basic.first_prompt
        return self.supplementary.first_prompt if self.supplementary else ""


class TwoStageOrchestrator:
    """Basic items first, then one dependent supplementary job per basic item.

    Idle -> Stage1Running -> Stage2Running -> Done, or Error when stage 1
    yields no items at all. Every supplementary item carries the id of the
    basic item it was generated from as `parent_id`.
    """

    def __init__(
        self,
        basic: FanOutCoordinator,
        supplementary: FanOutCoordinator,
        build_child: ChildBuilder,
        *,
        include_supplementary: bool = True,
        name: str = "two_stage",
    ):
        self.basic = basic
        self.supplementary = supplementary
        self.build_child = build_child
        self.include_supplementary = include_supplementary
        self.name = name
        self.state = StageState.IDLE

    async def run(
        self,
        descriptors: list[JobDescriptor],
        *,
        on_update: UpdateCallback | None = None,
        abort: asyncio.Event | None = None,
        reserved: Iterable[str] = (),
    ) -> TwoStageResult:
        if self.state in (StageState.STAGE1_RUNNING, StageState.STAGE2_RUNNING):
            raise RuntimeError(f"{self.name} is already running")

        try:
            return await self._run(descriptors, on_update, abort, set(reserved))
        except BaseException:
            if self.state in (StageState.STAGE1_RUNNING, StageState.STAGE2_RUNNING):
                self.state = StageState.ERROR
            raise

    async def _run(
        self,
        descriptors: list[JobDescriptor],
        on_update: UpdateCallback | None,
        abort: asyncio.Event | None,
        reserved: set[str],
    ) -> TwoStageResult:
        self.state = StageState.STAGE1_RUNNING
        basic_batch = aggregate(await self.basic.run_all(descriptors, abort=abort))
        basic_batch.items = repair_identities(basic_batch.items, reserved=reserved)

        if not basic_batch.items:
            self.state = StageState.ERROR
            log_service.log_batch(
                self.name,
                "error",
                reason="no basic items",
                failed=basic_batch.failure_count,
            )
            return TwoStageResult(self.state, basic_batch, None, [])

        if not self.include_supplementary:
            self.state = StageState.DONE
            await notify(on_update, basic_batch.items, basic_batch.first_prompt, False)
            return TwoStageResult(self.state, basic_batch, None, list(basic_batch.items))

        await notify(on_update, basic_batch.items, basic_batch.first_prompt, True)

        self.state = StageState.STAGE2_RUNNING
        parents = {item.id: item for item in basic_batch.items}
        try:
            child_descriptors = [self._child_for(parent) for parent in basic_batch.items]
        except Exception as e:
            raise BatchError(f"Failed to build supplementary jobs: {e}") from e

        child_results = await self.supplementary.run_all(child_descriptors, abort=abort)
        for descriptor, result in zip(child_descriptors, child_results):
            if result.success:
                parent = parents[descriptor.parent_id]
                result.items = [link_to_parent(item, parent) for item in result.items]

        supplementary_batch = aggregate(child_results)
        supplementary_batch.items = repair_identities(
            supplementary_batch.items,
            reserved=reserved | set(parents),
        )
        final_items = basic_batch.items + supplementary_batch.items

        self.state = StageState.DONE
        log_service.log_batch(
            self.name,
            "done",
            basic=len(basic_batch.items),
            supplementary=len(supplementary_batch.items),
            supplementary_failed=supplementary_batch.failure_count,
        )
        await notify(on_update, final_items, basic_batch.first_prompt, False)
        return TwoStageResult(self.state, basic_batch, supplementary_batch, final_items)

    def _child_for(self, parent: GeneratedItem) -> JobDescriptor:
        descriptor = self.build_child(parent)
        if descriptor.parent_id != parent.id:
            raise ValueError(f"Child job {descriptor.key} does not reference parent {parent.id}")
        return descriptor
