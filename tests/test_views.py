from __future__ import annotations

from family_api import views
from family_api.assemble import assemble_tree
from family_api.traverse import collect, flatten, iter_preorder, walk


def test_preorder_visits_children_in_insertion_order(family) -> None:
    tree = assemble_tree(family)

    assert [m.id for m in flatten(tree)] == ["r", "s", "a", "o", "k", "b"]
    assert [(m.id, d) for m, d in iter_preorder(tree, start="a")] == [("a", 0), ("o", 1), ("k", 1)]


def test_walk_can_prune_a_subtree(family) -> None:
    tree = assemble_tree(family)
    seen: list[str] = []

    def visit(member, depth):
        seen.append(member.id)
        return member.id != "a"

    walk(tree, visit)

    assert seen == ["r", "s", "a", "b"]


def test_collect_filters_in_preorder(family) -> None:
    tree = assemble_tree(family)

    assert collect(tree, lambda m: m.birth_year is None) == [tree.members["o"]]


def test_search_is_case_insensitive_substring(family) -> None:
    tree = assemble_tree(family)

    assert [m.name for m in views.search(tree, "MINA")] == ["Amina Sano"]
    # Substring, not prefix: "Samir" contains "ami" too.
    assert [m.name for m in views.search(tree, "ami")] == ["Amina Sano", "Samir"]
    assert [m.name for m in views.search(tree, "SANO")] == ["Sidafa Sano", "Amina Sano"]
    assert views.search(tree, "") == []
    assert views.search(tree, "   ") == []


def test_search_matches_the_query_verbatim(family) -> None:
    tree = assemble_tree(family)

    # Surrounding spaces are part of the query, not trimmed off.
    assert views.search(tree, "ami ") == []
    assert [m.name for m in views.search(tree, " sano")] == ["Sidafa Sano", "Amina Sano"]


def test_timeline_puts_unknown_years_last(make) -> None:
    tree = assemble_tree(
        [
            make("r", relationship="root", birth=1990),
            make("x", parent="r"),
            make("y", parent="r", birth=1950),
        ]
    )

    assert [m.birth_year for m in views.timeline(tree)] == [1950, 1990, None]


def test_gallery_keeps_members_with_photos(family) -> None:
    tree = assemble_tree(family)

    assert [m.id for m in views.gallery(tree)] == ["r", "a"]


def test_spouses_for_display(family, make) -> None:
    tree = assemble_tree(family)

    # Root: own spouse link plus spouse-tagged children, deduplicated.
    assert [m.id for m in views.spouses_for_display(tree, "r")] == ["s"]
    # Spouse-tagged member: structural parent counts as spouse.
    assert [m.id for m in views.spouses_for_display(tree, "o")] == ["a"]
    assert views.spouses_for_display(tree, "k") == []
    assert views.spouses_for_display(tree, "ghost") == []


def test_root_with_legacy_spouse_children(make) -> None:
    tree = assemble_tree(
        [
            make("r", relationship="root"),
            make("w1", parent="r", relationship="spouse", gender="female"),
            make("w2", parent="r", relationship="spouse", gender="female"),
            make("c", parent="r"),
        ]
    )

    assert [m.id for m in views.spouses_for_display(tree, "r")] == ["w1", "w2"]
    assert [m.id for m in views.spouses_for_display(tree, "w1")] == ["r"]


def test_manage_helpers(family) -> None:
    tree = assemble_tree(family)

    assert [(a.id, b.id) for a, b in views.linked_pairs(tree)] == [("r", "s"), ("a", "o")]
    assert "r" not in [m.id for m in views.manageable_members(tree)]
    assert [m.id for m in views.manageable_members(tree, "kha")] == ["k"]
    assert views.role_label(tree.members["r"]) == "Founder"
    assert views.role_label(tree.members["s"]) == "Matriarch"
    assert views.role_label(tree.members["k"]) == "Descendant"
