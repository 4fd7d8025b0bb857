from itertools import count

from quizcraft.models.jobs import JobResult
from quizcraft.models.schemas import GeneratedItem
from quizcraft.services.aggregator import (
    aggregate,
    link_to_parent,
    merge_collections,
    repair_identities,
    summarize_groups,
)


def _item(item_id, **extra) -> GeneratedItem:
    return GeneratedItem.model_validate({"id": item_id, **extra})


def _sequential_ids(prefix="fresh"):
    counter = count(1)
    return lambda: f"{prefix}_{next(counter)}"


def test_aggregate_keeps_descriptor_order_and_counts():
    results = [
        JobResult(key="a", success=True, items=[_item("a1"), _item("a2")], raw_prompt=""),
        JobResult.failed("b", "HTTP error! status: 500", kind="transport"),
        JobResult(key="c", success=True, items=[_item("c1")], raw_prompt="prompt c"),
        JobResult(key="d", success=True, items=[], raw_prompt="prompt d"),
    ]

    batch = aggregate(results)

    assert [item.id for item in batch.items] == ["a1", "a2", "c1"]
    assert batch.success_count == 3
    assert batch.failure_count == 1
    assert batch.total == 4
    assert batch.first_prompt == "prompt c"
    assert batch.errors == {"b": "HTTP error! status: 500"}
    assert not batch.all_failed


def test_aggregate_all_failed():
    batch = aggregate([JobResult.failed("a", "boom", kind="backend_error")])

    assert batch.all_failed
    assert batch.items == []
    assert batch.first_prompt == ""


def test_repair_renames_later_duplicates_only():
    items = [_item("q1", question="first"), _item("q1", question="second"), _item("q2")]

    repaired = repair_identities(items, id_factory=_sequential_ids())

    assert [item.id for item in repaired] == ["q1", "fresh_1", "q2"]
    assert repaired[0] is items[0]
    assert repaired[1].model_extra["question"] == "second"
    assert items[1].id == "q1"


def test_repair_skips_fresh_ids_that_collide():
    items = [_item("fresh_1"), _item("fresh_1")]

    repaired = repair_identities(items, id_factory=_sequential_ids())

    assert [item.id for item in repaired] == ["fresh_1", "fresh_2"]


def test_repair_is_idempotent():
    items = [_item("x"), _item("x"), _item("y"), _item("y")]

    once = repair_identities(items)
    twice = repair_identities(once)

    assert twice == once
    assert len({item.id for item in once}) == 4


def test_repair_treats_reserved_ids_as_taken():
    repaired = repair_identities([_item("old"), _item("new")], reserved={"old"}, id_factory=_sequential_ids())

    assert [item.id for item in repaired] == ["fresh_1", "new"]


def test_merge_appends_and_leaves_existing_untouched():
    existing = [_item("e1", question="keep me"), _item("e2")]
    new_items = [_item("e1", question="new one"), _item("n1")]

    merged = merge_collections(existing, new_items)

    assert len(merged) == 4
    assert merged[:2] == existing
    assert merged[2].id not in {"e1", "e2"}
    assert merged[2].model_extra["question"] == "new one"
    assert merged[3].id == "n1"
    assert len({item.id for item in merged}) == 4


def test_merge_with_empty_existing_is_plain_repair():
    merged = merge_collections([], [_item("a"), _item("b")])
    assert [item.id for item in merged] == ["a", "b"]


def test_link_to_parent_sets_back_reference_and_drops_backend_link():
    parent = _item("basic_1", groupKey="multiple_choice", question="parent")
    child = _item("s1", originalQuestionId="stale", question="child")

    linked = link_to_parent(child, parent)

    assert linked.parent_id == "basic_1"
    assert linked.is_supplementary
    assert linked.group_key == "multiple_choice"
    assert "originalQuestionId" not in linked.to_payload()
    assert linked.model_extra["question"] == "child"
    assert linked.id == "s1"


def test_summarize_groups():
    items = [
        _item("a", groupKey="photosynthesis", type="multiple_choice"),
        _item("b", groupKey="photosynthesis", questionType="short_answer"),
        _item("c", groupKey="respiration"),
        _item("d", groupKey="photosynthesis", isSupplementary=True, parentId="a", type="multiple_choice"),
    ]

    summary = summarize_groups(items)

    assert summary.by_group == {"photosynthesis": 3, "respiration": 1}
    assert summary.by_type == {"multiple_choice": 2, "short_answer": 1}
    assert summary.basic == 3
    assert summary.supplementary == 1
    assert summary.model_dump(by_alias=True)["byGroup"] == {"photosynthesis": 3, "respiration": 1}
