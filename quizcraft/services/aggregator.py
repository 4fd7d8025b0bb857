from __future__ import annotations

from collections import Counter
from typing import Callable, Iterable

from quizcraft.models.jobs import AggregateBatch, JobResult
from quizcraft.models.schemas import GeneratedItem, GroupSummary, new_item_id


def aggregate(results: Iterable[JobResult]) -> AggregateBatch:
    """Flatten successful results in descriptor order."""
    batch = AggregateBatch()
    for result in results:
        if not result.success:
            batch.failure_count += 1
            batch.errors[result.key] = result.error or "failed"
            continue
        batch.success_count += 1
        batch.items.extend(result.items)
        if not batch.first_prompt and result.raw_prompt:
            batch.first_prompt = result.raw_prompt
    return batch


def repair_identities(
    items: Iterable[GeneratedItem],
    *,
    reserved: Iterable[str] = (),
    id_factory: Callable[[], str] = new_item_id,
) -> list[GeneratedItem]:
    """Give every item after the first holder of an id a fresh id.

    Ids in `reserved` count as already taken. Items that are not renamed are
    returned as-is; renamed ones are copies. Applying this to an already
    unique collection returns an equal collection.
    """
    items = list(items)
    taken = set(reserved)
    all_ids = taken | {item.id for item in items}
    repaired: list[GeneratedItem] = []
    for item in items:
        if item.id not in taken:
            taken.add(item.id)
            repaired.append(item)
            continue
        fresh = id_factory()
        while fresh in all_ids:
            fresh = id_factory()
        all_ids.add(fresh)
        taken.add(fresh)
        repaired.append(item.model_copy(update={"id": fresh}))
    return repaired


def merge_collections(
    existing: Iterable[GeneratedItem],
    new_items: Iterable[GeneratedItem],
) -> list[GeneratedItem]:
    """Append new items to an accepted collection; existing items never change."""
    existing = list(existing)
    additions = repair_identities(new_items, reserved={item.id for item in existing})
    return existing + additions


def link_to_parent(item: GeneratedItem, parent: GeneratedItem) -> GeneratedItem:
    data = item.model_dump(by_alias=True)
    # parentId is the only back-reference; a backend-supplied one may be stale.
    data.pop("originalQuestionId", None)
    data.update(
        parentId=parent.id,
        isSupplementary=True,
        groupKey=parent.group_key,
    )
    return GeneratedItem.model_validate(data)


def summarize_groups(items: Iterable[GeneratedItem]) -> GroupSummary:
    by_group: Counter[str] = Counter()
    by_type: Counter[str] = Counter()
    basic = supplementary = 0
    for item in items:
        by_group[item.group_key] += 1
        if item.question_type:
            by_type[item.question_type] += 1
        if item.is_supplementary:
            supplementary += 1
        else:
            basic += 1
    return GroupSummary(
        by_group=dict(by_group),
        by_type=dict(by_type),
        basic=basic,
        supplementary=supplementary,
    )
