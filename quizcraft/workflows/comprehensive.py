from __future__ import annotations

import asyncio
from typing import Iterable

from quizcraft.config import settings
from quizcraft.models.jobs import AggregateBatch, JobDescriptor
from quizcraft.models.schemas import ComprehensiveRequest, GeneratedItem
from quizcraft.services import logger as log_service
from quizcraft.services.aggregator import merge_collections
from quizcraft.services.two_stage import StageState, TwoStageOrchestrator, UpdateCallback, notify
from quizcraft.workflows.base import GenerationOutcome, GenerationWorkflow, distinct_keys


class ComprehensiveWorkflow(GenerationWorkflow):
    """Basic questions per type, then supplementary questions per basic one."""

    name = "comprehensive"
    items_key = "comprehensiveQuestions"
    stream_path = settings.comprehensive_stream_path
    supplementary_items_key = "supplementaryQuestions"
    supplementary_path = settings.supplementary_stream_path

    def build_descriptors(self, request: ComprehensiveRequest) -> list[JobDescriptor]:
        model = self.model_for(request)
        return [
            JobDescriptor(
                key=key,
                params={
                    "passage": request.passage,
                    "division": request.division,
                    "subject": request.subject,
                    "area": request.area,
                    "questionTypes": [question_type],
                    "model": model,
                },
                group_key=question_type,
            )
            for key, question_type in zip(distinct_keys(request.question_types), request.question_types)
        ]

    def build_supplementary(self, request: ComprehensiveRequest, parent: GeneratedItem) -> JobDescriptor:
        return JobDescriptor(
            key=f"{parent.id}_supplementary",
            params={
                "passage": request.passage,
                "division": request.division,
                "basicQuestions": [parent.to_payload()],
                "count": settings.supplementary_per_parent,
                "model": self.model_for(request),
            },
            group_key=parent.group_key,
            parent_id=parent.id,
        )

    def orchestrator(self, request: ComprehensiveRequest) -> TwoStageOrchestrator:
        include = (
            settings.include_supplementary
            if request.include_supplementary is None
            else request.include_supplementary
        )
        return TwoStageOrchestrator(
            self.coordinator(self.stream_path, self.items_key, self.name),
            self.coordinator(
                self.supplementary_path,
                self.supplementary_items_key,
                f"{self.name}_supplementary",
            ),
            lambda parent: self.build_supplementary(request, parent),
            include_supplementary=include,
            name=self.name,
        )

    async def generate(
        self,
        request: ComprehensiveRequest,
        *,
        existing: Iterable[GeneratedItem] = (),
        on_update: UpdateCallback | None = None,
        abort: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        existing = list(existing)
        descriptors = self._descriptors(request)
        log_service.log_batch(self.name, "requested", jobs=len(descriptors), existing=len(existing))

        async def forward(items: list[GeneratedItem], used_prompt: str | None, intermediate: bool) -> None:
            if intermediate:
                await notify(on_update, merge_collections(existing, items), used_prompt, True)

        result = await self.orchestrator(request).run(
            descriptors,
            on_update=forward,
            abort=abort,
            reserved=[item.id for item in existing],
        )

        batch = AggregateBatch(
            items=list(result.items),
            success_count=result.basic.success_count,
            failure_count=result.basic.failure_count,
            first_prompt=result.first_prompt,
            errors=dict(result.basic.errors),
        )
        if result.supplementary is not None:
            batch.success_count += result.supplementary.success_count
            batch.failure_count += result.supplementary.failure_count
            batch.errors.update(result.supplementary.errors)
        if result.state is StageState.ERROR:
            # Zero basic items is a hard failure even if some jobs returned empty.
            batch.failure_count = result.basic.total
            batch.success_count = 0
        return await self._finish(batch, existing, on_update)
