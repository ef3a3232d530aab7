"""Add / update / delete / link / unlink over a snapshot of member records.

Every operation is a pure function: it reads a ``{id: Member}`` snapshot,
validates, and returns a ``Changeset`` of ordered writes. Nothing is written
until the store applies the whole changeset in one transaction, so a
NotFound or ValidationError never leaves partial state behind.

Write order matters for the ``spouse_id`` unique constraint and the
``parent_id`` foreign key: stale spouse references are cleared before new
ones are set, a member is inserted before anyone points at it, and children
are deleted before their parents.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Union

from .errors import NotFound, ValidationError
from .models import ROOT_SENTINEL, UPDATABLE_FIELDS, Gender, Member, Relationship
from .util import _blank_to_none, _parse_year

log = logging.getLogger(__name__)

Snapshot = Mapping[str, Member]


@dataclass(frozen=True)
class Insert:
    member: Member


@dataclass(frozen=True)
class Update:
    member_id: str
    fields: tuple[tuple[str, Any], ...]

    def as_dict(self) -> dict[str, Any]:
        return dict(self.fields)


@dataclass(frozen=True)
class Delete:
    member_id: str


Op = Union[Insert, Update, Delete]


@dataclass
class Changeset:
    ops: list[Op] = field(default_factory=list)

    def insert(self, member: Member) -> None:
        self.ops.append(Insert(member))

    def update(self, member_id: str, **fields: Any) -> None:
        self.ops.append(Update(member_id, tuple(fields.items())))

    def delete(self, member_id: str) -> None:
        self.ops.append(Delete(member_id))

    def __bool__(self) -> bool:
        return bool(self.ops)

    @property
    def inserted(self) -> list[Member]:
        return [op.member for op in self.ops if isinstance(op, Insert)]

    @property
    def deleted(self) -> list[str]:
        return [op.member_id for op in self.ops if isinstance(op, Delete)]

    def apply_to(self, snapshot: Snapshot) -> dict[str, Member]:
        """Return a new snapshot with the ops replayed in order."""

        out = dict(snapshot)
        for op in self.ops:
            if isinstance(op, Insert):
                out[op.member.id] = op.member
            elif isinstance(op, Update):
                if op.member_id in out:
                    out[op.member_id] = out[op.member_id].copy(**op.as_dict())
            else:
                out.pop(op.member_id, None)
        return out


@dataclass
class MemberDraft:
    name: str
    gender: Gender = Gender.MALE
    relationship: Relationship = Relationship.CHILD
    birth_year: int | None = None
    death_year: int | None = None
    photo_url: str | None = None
    spouse_name: str | None = None
    spouse_id: str | None = None
    mother_name: str | None = None
    location: str | None = None


def new_member_id() -> str:
    return uuid.uuid4().hex


def resolve_member_id(snapshot: Snapshot, ref: str) -> str:
    """Map a reference (member id, or the ``root`` sentinel) to a stored id."""

    if ref in snapshot:
        return ref
    if ref == ROOT_SENTINEL:
        for m in snapshot.values():
            if m.relationship is Relationship.ROOT:
                return m.id
        raise NotFound(ref, "Root member not found")
    raise NotFound(ref)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _clean_name(value: Any) -> str:
    name = str(value or "").strip()
    if not name:
        raise ValidationError("name is required", field="name")
    return name


def _clean_gender(value: Any) -> Gender:
    try:
        return Gender(value.value if isinstance(value, Gender) else str(value).lower())
    except ValueError:
        raise ValidationError(f"invalid gender: {value!r}", field="gender") from None


def _clean_relationship(value: Any) -> Relationship:
    if value is None or value == "":
        return Relationship.CHILD
    try:
        return Relationship(value.value if isinstance(value, Relationship) else str(value).lower())
    except ValueError:
        raise ValidationError(f"invalid relationship: {value!r}", field="relationship") from None


def _clean_year(value: Any, field_name: str) -> int | None:
    try:
        return _parse_year(value, field=field_name)
    except ValueError as e:
        raise ValidationError(str(e), field=field_name) from None


def _check_lifespan(birth_year: int | None, death_year: int | None) -> None:
    if birth_year is not None and death_year is not None and birth_year > death_year:
        raise ValidationError("birthYear must not be after deathYear", field="deathYear")


def _spouse_clears(snapshot: Snapshot, ids: set[str]) -> list[str]:
    """Members (outside ``ids``) whose spouse link touches any of ``ids``."""

    out: list[str] = []
    for mid in sorted(ids):
        m = snapshot.get(mid)
        if m is not None and m.spouse_id and m.spouse_id not in ids and m.spouse_id in snapshot and m.spouse_id not in out:
            out.append(m.spouse_id)
    for m in snapshot.values():
        if m.id not in ids and m.spouse_id in ids and m.id not in out:
            out.append(m.id)
    return out


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


def add_member(
    snapshot: Snapshot,
    parent_ref: str,
    draft: MemberDraft,
    *,
    link_as_spouse: bool = False,
    new_id: Callable[[], str] = new_member_id,
) -> tuple[Changeset, Member]:
    """Create a member under ``parent_ref``.

    The new record always hangs under the resolved target (spouses are kept
    as pseudo-children of their partner, as the tree has always stored
    them). With ``link_as_spouse`` the target's previous spouse is released
    and the new member and the target are linked both ways.
    """

    target_id = resolve_member_id(snapshot, parent_ref)
    relationship = _clean_relationship(draft.relationship)
    if relationship is Relationship.ROOT:
        raise ValidationError("cannot add a second root member", field="relationship")

    birth_year = _clean_year(draft.birth_year, "birthYear")
    death_year = _clean_year(draft.death_year, "deathYear")
    _check_lifespan(birth_year, death_year)

    linking = link_as_spouse
    spouse_id = _blank_to_none(draft.spouse_id)
    if spouse_id is not None and not linking:
        # An explicit spouse on a plain add still goes through the link rules.
        spouse_id = resolve_member_id(snapshot, spouse_id)

    member = Member(
        id=new_id(),
        name=_clean_name(draft.name),
        gender=_clean_gender(draft.gender),
        relationship=relationship,
        birth_year=birth_year,
        death_year=death_year,
        photo_url=_blank_to_none(draft.photo_url),
        spouse_name=_blank_to_none(draft.spouse_name),
        spouse_id=None,
        parent_id=target_id,
        mother_name=_blank_to_none(draft.mother_name),
        location=_blank_to_none(draft.location),
    )

    cs = Changeset()
    partner = target_id if linking else spouse_id
    if partner is not None:
        for other in _spouse_clears(snapshot, {partner}):
            cs.update(other, spouse_id=None)
    cs.insert(member)
    if partner is not None:
        cs.update(partner, spouse_id=member.id)
        cs.update(member.id, spouse_id=partner)
        member = member.copy(spouse_id=partner)

    log.info("Adding member %s under %s (spouse link: %s)", member.id, target_id, partner)
    return cs, member


def update_member(snapshot: Snapshot, ref: str, changes: Mapping[str, Any]) -> Changeset:
    """Field-level update: only keys present in ``changes`` are touched.

    ``None`` or "" clears an optional field; ``name`` and ``gender`` cannot be
    cleared. Unknown keys are rejected.
    """

    member_id = resolve_member_id(snapshot, ref)
    current = snapshot[member_id]

    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"unknown field(s): {', '.join(sorted(unknown))}")

    fields: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "name":
            fields["name"] = _clean_name(value)
        elif key == "gender":
            fields["gender"] = _clean_gender(value)
        elif key == "birth_year":
            fields["birth_year"] = _clean_year(value, "birthYear")
        elif key == "death_year":
            fields["death_year"] = _clean_year(value, "deathYear")
        else:
            fields[key] = _blank_to_none(value)

    _check_lifespan(
        fields.get("birth_year", current.birth_year),
        fields.get("death_year", current.death_year),
    )

    cs = Changeset()
    if fields:
        cs.update(member_id, **fields)
    return cs


def delete_member(snapshot: Snapshot, ref: str) -> Changeset:
    """Delete a member and every descendant (children first).

    Survivors married to anyone being deleted get their ``spouse_id`` cleared.
    """

    member_id = resolve_member_id(snapshot, ref)

    by_parent: dict[str, list[str]] = {}
    for m in snapshot.values():
        if m.parent_id:
            by_parent.setdefault(m.parent_id, []).append(m.id)

    # Iterative post-order; the visited set stops malformed parent cycles.
    order: list[str] = []
    seen: set[str] = set()
    stack: list[tuple[str, bool]] = [(member_id, False)]
    while stack:
        mid, expanded = stack.pop()
        if expanded:
            order.append(mid)
            continue
        if mid in seen:
            continue
        seen.add(mid)
        stack.append((mid, True))
        for cid in reversed(by_parent.get(mid, [])):
            if cid not in seen:
                stack.append((cid, False))

    doomed = set(order)
    cs = Changeset()
    for survivor in _spouse_clears(snapshot, doomed):
        cs.update(survivor, spouse_id=None)
    for mid in order:
        cs.delete(mid)

    if snapshot[member_id].relationship is Relationship.ROOT:
        log.warning("Deleting root member %s removes the whole tree (%d members)", member_id, len(order))
    log.info("Deleting member %s with %d descendant(s)", member_id, len(order) - 1)
    return cs


def link_members(snapshot: Snapshot, ref_a: str, ref_b: str) -> Changeset:
    """Marry two members, releasing whatever spouse either had before."""

    a = resolve_member_id(snapshot, ref_a)
    b = resolve_member_id(snapshot, ref_b)
    if a == b:
        raise ValidationError("a member cannot be linked to themselves")

    cs = Changeset()
    for other in _spouse_clears(snapshot, {a, b}):
        log.info("Releasing previous spouse link of %s", other)
        cs.update(other, spouse_id=None)
    # Clear first: a -> b must not collide with a stale b -> x on the unique index.
    if snapshot[a].spouse_id not in (None, b):
        cs.update(a, spouse_id=None)
    if snapshot[b].spouse_id not in (None, a):
        cs.update(b, spouse_id=None)
    cs.update(a, spouse_id=b)
    cs.update(b, spouse_id=a)
    log.info("Linking members %s and %s", a, b)
    return cs


def unlink_members(snapshot: Snapshot, ref_a: str, ref_b: str) -> Changeset:
    """Clear the link between two members if, and only if, it points at each other.

    Idempotent: unlinking an unlinked pair (or unknown ids) is a no-op.
    """

    ids: list[str] = []
    for ref in (ref_a, ref_b):
        try:
            ids.append(resolve_member_id(snapshot, ref))
        except NotFound:
            ids.append(ref)
    pair = set(ids)

    cs = Changeset()
    for mid in ids:
        m = snapshot.get(mid)
        if m is not None and m.spouse_id in pair and m.spouse_id != m.id:
            cs.update(mid, spouse_id=None)
    if cs:
        log.info("Unlinking members %s and %s", ids[0], ids[1])
    return cs


def spouse_symmetry_violations(snapshot: Snapshot) -> list[tuple[str, str | None]]:
    """Pairs ``(a, a.spouse_id)`` where the spouse does not point back."""

    out: list[tuple[str, str | None]] = []
    for m in snapshot.values():
        if not m.spouse_id:
            continue
        other = snapshot.get(m.spouse_id)
        if other is None or other.spouse_id != m.id:
            out.append((m.id, m.spouse_id))
    return out
