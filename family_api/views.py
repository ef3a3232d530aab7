"""Read-only views over an assembled tree: search, timeline, gallery, spouses."""

from __future__ import annotations

from .assemble import AssembledTree
from .models import Member, Relationship
from .traverse import collect, flatten


def search(tree: AssembledTree, query: str) -> list[Member]:
    """Case-insensitive substring match on ``name``; an empty query matches nothing."""

    if not (query or "").strip():
        return []
    q = query.casefold()
    return collect(tree, lambda m: q in (m.name or "").casefold())


def timeline(tree: AssembledTree) -> list[Member]:
    """Everyone ordered by birth year; unknown years go last, ties keep tree order."""

    return sorted(
        flatten(tree),
        key=lambda m: (m.birth_year is None, m.birth_year if m.birth_year is not None else 0),
    )


def gallery(tree: AssembledTree) -> list[Member]:
    return collect(tree, lambda m: bool((m.photo_url or "").strip()))


def spouses_for_display(tree: AssembledTree, member_id: str) -> list[Member]:
    """Spouses shown on a profile.

    Besides the member's own ``spouse_id``, two legacy shapes count: the
    root's children tagged ``spouse`` are its spouses, and a member tagged
    ``spouse`` is married to its structural parent.
    """

    member = tree.get(member_id)
    if member is None:
        return []

    found: list[Member] = []
    seen: set[str] = {member.id}

    def _add(m: Member | None) -> None:
        if m is None or m.id in seen:
            return
        seen.add(m.id)
        found.append(m)

    if member.spouse_id:
        _add(tree.get(member.spouse_id))
    if member.relationship is Relationship.ROOT:
        for child in tree.children_of(member.id):
            if child.relationship is Relationship.SPOUSE:
                _add(child)
    if member.relationship is Relationship.SPOUSE:
        _add(tree.parent(member.id))
    return found


def linked_pairs(tree: AssembledTree) -> list[tuple[Member, Member]]:
    """Marriage edges resolved to members, for the unlink screen."""

    pairs: list[tuple[Member, Member]] = []
    for edge in tree.marriages:
        a, b = tree.get(edge.source), tree.get(edge.target)
        if a is not None and b is not None:
            pairs.append((a, b))
    return pairs


def manageable_members(tree: AssembledTree, query: str = "") -> list[Member]:
    """Members that may be deleted from the manage screen (never the root)."""

    q = (query or "").strip().casefold()
    return collect(
        tree,
        lambda m: m.relationship is not Relationship.ROOT and q in (m.name or "").casefold(),
    )


def role_label(member: Member) -> str:
    if member.relationship is Relationship.ROOT:
        return "Founder"
    if member.relationship is Relationship.SPOUSE:
        return "Matriarch"
    return "Descendant"
