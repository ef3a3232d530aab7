from __future__ import annotations

from typing import Callable, Iterator, Optional

from .assemble import AssembledTree
from .models import Member

# visit(member, depth) -> False stops descent below that member.
Visit = Callable[[Member, int], Optional[bool]]


def iter_preorder(
    tree: AssembledTree,
    *,
    start: str | None = None,
    descend: Callable[[str], bool] | None = None,
) -> Iterator[tuple[Member, int]]:
    """Yield ``(member, depth)`` in pre-order, children in insertion order.

    ``descend(member_id)`` returning False hides that member's children (used
    for collapsed subtrees). A visited set guards against malformed input.
    """

    start_id = tree.root_id if start is None else start
    if start_id not in tree.members:
        return

    seen: set[str] = set()
    stack: list[tuple[str, int]] = [(start_id, 0)]
    while stack:
        mid, depth = stack.pop()
        if mid in seen:
            continue
        seen.add(mid)
        yield tree.members[mid], depth
        if descend is not None and not descend(mid):
            continue
        kids = tree.children.get(mid, [])
        for cid in reversed(kids):
            if cid not in seen:
                stack.append((cid, depth + 1))


def walk(tree: AssembledTree, visit: Visit, *, start: str | None = None) -> None:
    """Pre-order traversal driven by a visit callback."""

    pruned: set[str] = set()

    def _descend(mid: str) -> bool:
        return mid not in pruned

    for member, depth in iter_preorder(tree, start=start, descend=_descend):
        if visit(member, depth) is False:
            pruned.add(member.id)


def collect(tree: AssembledTree, predicate: Callable[[Member], bool]) -> list[Member]:
    out: list[Member] = []

    def _visit(member: Member, _depth: int) -> None:
        if predicate(member):
            out.append(member)

    walk(tree, _visit)
    return out


def flatten(tree: AssembledTree) -> list[Member]:
    return [m for m, _ in iter_preorder(tree)]


def find_member(tree: AssembledTree, member_id: str) -> Member | None:
    return tree.get(member_id)


def find_parent(tree: AssembledTree, member_id: str) -> Member | None:
    return tree.parent(member_id)
