from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from family_api.assemble import (
    assemble_or_placeholder,
    assemble_tree,
    derive_marriage_edges,
    placeholder_tree,
    select_root,
    tree_from_nested,
)
from family_api.errors import RootInvariantViolation


def test_single_root_has_no_children(make) -> None:
    tree = assemble_tree([make("r", relationship="root")])

    assert tree.root_id == "r"
    assert tree.children_of("r") == []
    assert tree.to_nested() == {"id": "r", "name": "r", "gender": "male", "relationship": "root"}


def test_children_follow_insertion_order(family) -> None:
    tree = assemble_tree(family)

    assert [m.id for m in tree.children_of("r")] == ["s", "a", "b"]
    assert [m.id for m in tree.children_of("a")] == ["o", "k"]
    assert tree.parent("k").id == "a"
    assert tree.spouse("a").id == "o"
    assert not tree.orphans


def test_created_at_orders_children_even_when_records_are_shuffled(make) -> None:
    t0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
    records = [
        make("c2", parent="r", created_at=t0 + timedelta(seconds=2)),
        make("r", relationship="root", created_at=t0),
        make("c1", parent="r", created_at=t0 + timedelta(seconds=1)),
    ]

    tree = assemble_tree(records)

    assert [m.id for m in tree.children_of("r")] == ["c1", "c2"]


def test_nested_payload_omits_children_on_leaves(family) -> None:
    out = assemble_tree(family).to_nested()

    assert [c["id"] for c in out["children"]] == ["s", "a", "b"]
    amina = out["children"][1]
    assert amina["spouseId"] == "o"
    assert [c["id"] for c in amina["children"]] == ["o", "k"]
    assert "children" not in out["children"][2]


def test_tagged_root_wins_over_parentless_member(make) -> None:
    members = [make("x"), make("r", relationship="root"), make("y", parent="r")]

    assert select_root(members).id == "r"


def test_parentless_member_is_root_when_nobody_is_tagged(make) -> None:
    assert select_root([make("a"), make("b", parent="a")]).id == "a"


def test_two_tagged_roots_is_an_error(make) -> None:
    with pytest.raises(RootInvariantViolation) as exc:
        assemble_tree([make("r1", relationship="root"), make("r2", relationship="root")])
    assert set(exc.value.candidates) == {"r1", "r2"}


def test_no_root_found(make) -> None:
    with pytest.raises(RootInvariantViolation, match="no root found"):
        assemble_tree([make("a", parent="b"), make("b", parent="a")])


def test_orphans_are_excluded_and_logged(make, caplog) -> None:
    records = [
        make("r", relationship="root"),
        make("lost", parent="ghost"),
        make("lost-child", parent="lost"),
        make("ok", parent="r"),
    ]

    with caplog.at_level(logging.WARNING):
        tree = assemble_tree(records)

    assert "lost" not in tree
    assert "lost-child" not in tree
    assert "ok" in tree
    reasons = {o.member_id: o.reason for o in tree.orphans}
    assert reasons == {"lost": "missing_parent", "lost-child": "detached"}
    assert "Excluding member lost" in caplog.text


def test_parent_cycle_is_reported_not_followed(make) -> None:
    records = [make("r", relationship="root"), make("a", parent="b"), make("b", parent="a")]

    tree = assemble_tree(records)

    assert len(tree) == 1
    assert {o.reason for o in tree.orphans} == {"cycle"}


def test_marriage_edges_are_deduplicated(family) -> None:
    edges = derive_marriage_edges(family)

    assert [e.key for e in edges] == [("r", "s"), ("a", "o")]


def test_one_sided_spouse_reference_still_yields_one_edge(make) -> None:
    edges = derive_marriage_edges([make("a", spouse="b"), make("b")])

    assert [e.key for e in edges] == [("a", "b")]


def test_unresolved_and_self_spouses_are_skipped(make, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        edges = derive_marriage_edges([make("a", spouse="nobody"), make("b", spouse="b")])

    assert edges == []
    assert "unknown spouse nobody" in caplog.text
    assert "linked to itself" in caplog.text


def test_missing_spouse_is_an_orphan_signal(make) -> None:
    tree = assemble_tree([make("r", relationship="root", spouse="gone")])

    assert tree.orphans[0].reason == "missing_spouse"
    assert tree.marriages == []


def test_empty_store_gives_placeholder() -> None:
    tree = assemble_or_placeholder([])

    assert tree.placeholder
    assert tree.to_nested() == {
        "id": "root",
        "name": "Family Root",
        "gender": "male",
        "relationship": "root",
        "children": [],
    }


def test_root_violation_degrades_to_placeholder(make, caplog) -> None:
    with caplog.at_level(logging.ERROR):
        tree = assemble_or_placeholder([make("a", relationship="root"), make("b", relationship="root")])

    assert tree.placeholder
    assert "Cannot assemble family tree" in caplog.text


def test_nested_payload_rebuilds_the_same_tree(family) -> None:
    original = assemble_tree(family)

    rebuilt = tree_from_nested(original.to_nested())

    assert rebuilt.root_id == "r"
    assert rebuilt.children == original.children
    assert [e.key for e in rebuilt.marriages] == [e.key for e in original.marriages]
    assert rebuilt.members["a"].birth_year == 1990
    assert not rebuilt.placeholder


def test_placeholder_payload_round_trips_as_placeholder() -> None:
    assert tree_from_nested(placeholder_tree().to_nested()).placeholder
