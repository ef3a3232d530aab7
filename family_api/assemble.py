"""Build the nested family tree (plus marriage edges) from flat member records.

The assembled tree is a disposable projection: it is rebuilt from the store
on every read and never written back. Nodes live in an arena keyed by member
id; parent/child/spouse relations are id indexes built once per assembly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from .errors import Orphan, RootInvariantViolation
from .models import ROOT_SENTINEL, Gender, Member, Relationship, placeholder_root
from .util import _compact_json

log = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class MarriageEdge:
    """Unordered spouse pair; ``source`` is whichever member was seen first."""

    source: str
    target: str

    @property
    def key(self) -> tuple[str, str]:
        a, b = sorted((self.source, self.target))
        return a, b

    def to_public(self) -> dict[str, Any]:
        return {"key": "-".join(self.key), "memberId1": self.source, "memberId2": self.target}


@dataclass
class AssembledTree:
    root_id: str
    members: dict[str, Member]
    children: dict[str, list[str]]
    parent_of: dict[str, str]
    spouse_of: dict[str, str]
    marriages: list[MarriageEdge] = field(default_factory=list)
    orphans: list[Orphan] = field(default_factory=list)
    placeholder: bool = False

    def __contains__(self, member_id: object) -> bool:
        return member_id in self.members

    def __len__(self) -> int:
        return len(self.members)

    @property
    def root(self) -> Member:
        return self.members[self.root_id]

    def get(self, member_id: str) -> Member | None:
        return self.members.get(member_id)

    def children_of(self, member_id: str) -> list[Member]:
        return [self.members[cid] for cid in self.children.get(member_id, [])]

    def parent(self, member_id: str) -> Member | None:
        pid = self.parent_of.get(member_id)
        return self.members.get(pid) if pid else None

    def spouse(self, member_id: str) -> Member | None:
        sid = self.spouse_of.get(member_id)
        return self.members.get(sid) if sid else None

    def has_children(self, member_id: str) -> bool:
        return bool(self.children.get(member_id))

    def to_nested(self) -> dict[str, Any]:
        """Nested ``GET /family`` payload; ``children`` is omitted for leaves."""

        def build(member_id: str) -> dict[str, Any]:
            node = _compact_json(self.members[member_id].to_node()) or {}
            kids = [build(cid) for cid in self.children.get(member_id, [])]
            if kids:
                node["children"] = kids
            return node

        out = build(self.root_id)
        if self.placeholder:
            out["children"] = []
        return out


def _insertion_key(item: tuple[int, Member]) -> tuple[datetime, int]:
    idx, m = item
    ts = m.created_at
    if ts is not None and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts or _EPOCH, idx)


def select_root(members: Iterable[Member]) -> Member:
    """Pick the single root record.

    An explicit ``relationship = root`` tag wins; only when nobody is tagged do
    we fall back to "the member without a parent". Ambiguity is an error.
    """

    members = list(members)
    tagged = [m for m in members if m.relationship is Relationship.ROOT]
    if len(tagged) == 1:
        return tagged[0]
    if len(tagged) > 1:
        raise RootInvariantViolation(
            f"multiple members tagged as root: {', '.join(m.id for m in tagged)}",
            candidates=tuple(m.id for m in tagged),
        )

    parentless = [m for m in members if not m.parent_id]
    if len(parentless) == 1:
        return parentless[0]
    if not parentless:
        raise RootInvariantViolation("no root found")
    raise RootInvariantViolation(
        f"multiple parentless members and no tagged root: {', '.join(m.id for m in parentless)}",
        candidates=tuple(m.id for m in parentless),
    )


def derive_marriage_edges(members: Iterable[Member]) -> list[MarriageEdge]:
    """One edge per unordered spouse pair, deduplicated by sorted-id key."""

    ordered = list(members)
    by_id = {m.id: m for m in ordered}
    seen: set[tuple[str, str]] = set()
    edges: list[MarriageEdge] = []
    for m in ordered:
        if not m.spouse_id:
            continue
        if m.spouse_id == m.id:
            log.warning("Member %s is linked to itself as spouse; ignoring", m.id)
            continue
        spouse = by_id.get(m.spouse_id)
        if spouse is None:
            log.warning("Member %s references unknown spouse %s", m.id, m.spouse_id)
            continue
        edge = MarriageEdge(m.id, spouse.id)
        if edge.key in seen:
            continue
        seen.add(edge.key)
        edges.append(edge)
    return edges


def assemble_tree(records: Iterable[Member]) -> AssembledTree:
    """Group members by ``parent_id`` and hang each group under its parent.

    Raises RootInvariantViolation when no single root can be chosen. Records
    that cannot be reached from the root (unknown parent, cycles, descendants
    of such records) are left out and reported in ``orphans``.
    """

    ordered = [m for _, m in sorted(enumerate(records), key=_insertion_key)]
    by_id: dict[str, Member] = {}
    for m in ordered:
        if m.id in by_id:
            log.warning("Duplicate member id %s; keeping the first record", m.id)
            continue
        by_id[m.id] = m

    root = select_root(by_id.values())

    groups: dict[str, list[str]] = {}
    for m in by_id.values():
        if m.id == root.id or not m.parent_id:
            continue
        groups.setdefault(m.parent_id, []).append(m.id)

    members: dict[str, Member] = {root.id: root}
    children: dict[str, list[str]] = {}
    parent_of: dict[str, str] = {}

    stack = [root.id]
    while stack:
        pid = stack.pop()
        kids = [cid for cid in groups.get(pid, []) if cid not in members]
        if not kids:
            continue
        children[pid] = kids
        for cid in kids:
            members[cid] = by_id[cid]
            parent_of[cid] = pid
        stack.extend(reversed(kids))

    orphans: list[Orphan] = []
    for m in by_id.values():
        if m.id in members:
            continue
        if not m.parent_id:
            orphan = Orphan(m.id, None, "detached")
        elif m.parent_id not in by_id:
            orphan = Orphan(m.id, m.parent_id, "missing_parent")
        elif _on_parent_cycle(m.id, by_id):
            orphan = Orphan(m.id, m.parent_id, "cycle")
        else:
            orphan = Orphan(m.id, m.parent_id, "detached")
        log.warning("Excluding member %s from tree (%s, parent=%s)", orphan.member_id, orphan.reason, orphan.reference)
        orphans.append(orphan)

    spouse_of: dict[str, str] = {}
    for m in members.values():
        if not m.spouse_id or m.spouse_id == m.id:
            continue
        if m.spouse_id in members:
            spouse_of[m.id] = m.spouse_id
        elif m.spouse_id not in by_id:
            orphans.append(Orphan(m.id, m.spouse_id, "missing_spouse"))

    return AssembledTree(
        root_id=root.id,
        members=members,
        children=children,
        parent_of=parent_of,
        spouse_of=spouse_of,
        marriages=derive_marriage_edges(m for m in by_id.values() if m.id in members),
        orphans=orphans,
    )


def _on_parent_cycle(member_id: str, by_id: dict[str, Member]) -> bool:
    seen: set[str] = set()
    cur: str | None = member_id
    while cur is not None and cur in by_id:
        if cur in seen:
            return True
        seen.add(cur)
        cur = by_id[cur].parent_id
    return False


def placeholder_tree() -> AssembledTree:
    root = placeholder_root()
    return AssembledTree(
        root_id=root.id,
        members={root.id: root},
        children={},
        parent_of={},
        spouse_of={},
        placeholder=True,
    )


def assemble_or_placeholder(records: Iterable[Member]) -> AssembledTree:
    """Assemble, degrading to the empty placeholder root on a root violation."""

    records = list(records)
    if not records:
        return placeholder_tree()
    try:
        return assemble_tree(records)
    except RootInvariantViolation as e:
        log.error("Cannot assemble family tree: %s", e)
        return placeholder_tree()


def tree_from_nested(payload: dict[str, Any]) -> AssembledTree:
    """Rebuild an arena tree from the nested ``GET /family`` payload (client side)."""

    records: list[Member] = []
    stack: list[tuple[dict[str, Any], str | None]] = [(payload, None)]
    while stack:
        node, parent_id = stack.pop()
        meta = node.get("metadata") or {}
        records.append(
            Member(
                id=str(node["id"]),
                name=node.get("name") or "",
                gender=Gender(node.get("gender") or Gender.MALE.value),
                relationship=Relationship(node.get("relationship") or Relationship.CHILD.value),
                birth_year=node.get("birthYear"),
                death_year=node.get("deathYear"),
                photo_url=node.get("photoUrl"),
                spouse_name=node.get("spouseName"),
                spouse_id=node.get("spouseId"),
                parent_id=parent_id,
                mother_name=meta.get("motherName"),
                location=meta.get("location"),
            )
        )
        # Pushed in reverse so records come out in pre-order, the server's insertion order.
        for child in reversed(node.get("children") or []):
            stack.append((child, str(node["id"])))

    tree = assemble_tree(records)
    tree.placeholder = tree.root_id == ROOT_SENTINEL and len(records) == 1
    return tree
