from __future__ import annotations

import asyncio

import pytest

from quizcraft.models.jobs import JobDescriptor, JobResult
from quizcraft.models.schemas import GeneratedItem
from quizcraft.services.fan_out import BatchError, FanOutCoordinator
from quizcraft.services.progress import ProgressTracker
from quizcraft.services.two_stage import StageState, TwoStageOrchestrator


class ScriptedRunner:
    """Returns canned items per descriptor; `None` from the script means failure."""

    def __init__(self, script, tracker: ProgressTracker):
        self.script = script
        self.tracker = tracker
        self.calls: list[JobDescriptor] = []

    async def run(self, descriptor: JobDescriptor, *, abort=None) -> JobResult:
        self.calls.append(descriptor)
        await asyncio.sleep(0)
        raw_items = self.script(descriptor)
        if raw_items is None:
            self.tracker.update(descriptor.key, 0, "error")
            return JobResult.failed(descriptor.key, f"{descriptor.key} failed", kind="backend_error")
        self.tracker.update(descriptor.key, 100, f"done({len(raw_items)} items)")
        return JobResult(
            key=descriptor.key,
            success=True,
            items=[GeneratedItem.model_validate(raw) for raw in raw_items],
            raw_prompt=f"prompt for {descriptor.key}",
        )


def basic_script(descriptor):
    if descriptor.key == "broken":
        return None
    return [
        {"id": f"{descriptor.key}_q{n}", "groupKey": descriptor.key, "question": f"{descriptor.key} {n}"}
        for n in (1, 2)
    ]


def child_script(descriptor):
    parent_id = descriptor.params["parentId"]
    return [
        {"id": f"{parent_id}_s{n}", "originalQuestionId": "from-backend", "question": "supplementary"}
        for n in (1, 2)
    ]


def build_child(parent: GeneratedItem) -> JobDescriptor:
    return JobDescriptor(
        key=f"{parent.id}_supplementary",
        params={"parentId": parent.id},
        group_key=parent.group_key,
        parent_id=parent.id,
    )


def _orchestrator(basic=basic_script, children=child_script, child_builder=build_child, **kwargs):
    tracker = ProgressTracker()
    basic_runner = ScriptedRunner(basic, tracker)
    child_runner = ScriptedRunner(children, tracker)
    orchestrator = TwoStageOrchestrator(
        FanOutCoordinator(basic_runner),
        FanOutCoordinator(child_runner),
        child_builder,
        **kwargs,
    )
    return orchestrator, basic_runner, child_runner


def _descriptors(*keys):
    return [JobDescriptor(key=key, group_key=key) for key in keys]


class Recorder:
    def __init__(self):
        self.calls: list[tuple[list[str], str | None, bool]] = []

    def __call__(self, items, used_prompt, intermediate):
        self.calls.append(([item.id for item in items], used_prompt, intermediate))


@pytest.mark.asyncio
async def test_every_supplementary_item_links_to_its_basic_item():
    orchestrator, _, child_runner = _orchestrator()
    recorder = Recorder()

    result = await orchestrator.run(_descriptors("multiple_choice", "short_answer"), on_update=recorder)

    assert result.state is StageState.DONE
    assert orchestrator.state is StageState.DONE
    basic_ids = [item.id for item in result.basic.items]
    assert basic_ids == [
        "multiple_choice_q1",
        "multiple_choice_q2",
        "short_answer_q1",
        "short_answer_q2",
    ]
    assert len(child_runner.calls) == 4

    supplementary = result.supplementary.items
    assert len(supplementary) == 8
    for item in supplementary:
        assert item.is_supplementary
        assert item.parent_id in basic_ids
        assert item.id.startswith(item.parent_id)
        assert "originalQuestionId" not in item.to_payload()
    assert {item.group_key for item in supplementary} == {"multiple_choice", "short_answer"}
    assert result.items == result.basic.items + supplementary
    assert result.first_prompt == "prompt for multiple_choice"


@pytest.mark.asyncio
async def test_callbacks_fire_after_stage_one_and_at_the_end():
    orchestrator, _, _ = _orchestrator()
    recorder = Recorder()

    await orchestrator.run(_descriptors("multiple_choice"), on_update=recorder)

    assert [(len(ids), intermediate) for ids, _, intermediate in recorder.calls] == [(2, True), (6, False)]
    assert recorder.calls[0][1] == "prompt for multiple_choice"


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    orchestrator, _, _ = _orchestrator()
    seen = []

    async def on_update(items, used_prompt, intermediate):
        await asyncio.sleep(0)
        seen.append(intermediate)

    await orchestrator.run(_descriptors("multiple_choice"), on_update=on_update)

    assert seen == [True, False]


@pytest.mark.asyncio
async def test_no_basic_items_stops_before_stage_two():
    orchestrator, _, child_runner = _orchestrator()
    recorder = Recorder()

    result = await orchestrator.run(_descriptors("broken"), on_update=recorder)

    assert result.state is StageState.ERROR
    assert result.items == []
    assert result.supplementary is None
    assert result.basic.failure_count == 1
    assert child_runner.calls == []
    assert recorder.calls == []


@pytest.mark.asyncio
async def test_successful_but_empty_stage_one_is_an_error():
    orchestrator, _, child_runner = _orchestrator(basic=lambda descriptor: [])

    result = await orchestrator.run(_descriptors("multiple_choice"))

    assert result.state is StageState.ERROR
    assert child_runner.calls == []


@pytest.mark.asyncio
async def test_failed_child_job_leaves_other_parents_linked():
    def children(descriptor):
        if descriptor.params["parentId"] == "multiple_choice_q1":
            return None
        return child_script(descriptor)

    orchestrator, _, _ = _orchestrator(children=children)

    result = await orchestrator.run(_descriptors("multiple_choice", "broken"))

    assert result.state is StageState.DONE
    assert result.basic.failure_count == 1
    assert result.supplementary.failure_count == 1
    assert result.supplementary.success_count == 1
    assert {item.parent_id for item in result.supplementary.items} == {"multiple_choice_q2"}
    assert "multiple_choice_q1_supplementary" in result.supplementary.errors


@pytest.mark.asyncio
async def test_supplementary_disabled_finishes_after_stage_one():
    orchestrator, _, child_runner = _orchestrator(include_supplementary=False)
    recorder = Recorder()

    result = await orchestrator.run(_descriptors("multiple_choice"), on_update=recorder)

    assert result.state is StageState.DONE
    assert result.supplementary is None
    assert child_runner.calls == []
    assert [intermediate for _, _, intermediate in recorder.calls] == [False]


@pytest.mark.asyncio
async def test_reserved_ids_rename_basic_items_before_children_are_built():
    orchestrator, _, child_runner = _orchestrator()

    result = await orchestrator.run(_descriptors("multiple_choice"), reserved=["multiple_choice_q1"])

    renamed = result.basic.items[0]
    assert renamed.id != "multiple_choice_q1"
    assert child_runner.calls[0].parent_id == renamed.id
    assert all(
        item.parent_id in {renamed.id, "multiple_choice_q2"} for item in result.supplementary.items
    )


@pytest.mark.asyncio
async def test_child_builder_that_loses_the_parent_aborts_the_batch():
    def bad_builder(parent):
        return JobDescriptor(key=f"{parent.id}_supplementary", parent_id=None)

    orchestrator, _, child_runner = _orchestrator(child_builder=bad_builder)

    with pytest.raises(BatchError):
        await orchestrator.run(_descriptors("multiple_choice"))

    assert orchestrator.state is StageState.ERROR
    assert child_runner.calls == []
