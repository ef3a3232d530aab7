"""Tidy-tree layout for the visible part of an assembled tree.

Buchheim/Walker in linear time: siblings sit ``node_width`` apart, cousins
twice that, each parent is centred over its children and depth maps to
``y = depth * level_height``. The root is translated to ``x = 0``.

Collapsed members keep their children in the assembled tree; the layout
simply does not descend into them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import AbstractSet

from .assemble import AssembledTree

NODE_WIDTH = 160.0
LEVEL_HEIGHT = 160.0


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def lerp(self, other: Point, t: float) -> Point:
        return Point(self.x + (other.x - self.x) * t, self.y + (other.y - self.y) * t)


@dataclass
class _LNode:
    id: str
    depth: int
    parent: _LNode | None = None
    children: list[_LNode] = field(default_factory=list)
    i: int = 0  # index among siblings
    z: float = 0.0  # prelim
    m: float = 0.0  # modifier
    c: float = 0.0  # change
    s: float = 0.0  # shift
    t: _LNode | None = None  # thread
    a: _LNode | None = None  # ancestor
    A: _LNode | None = None  # default ancestor (on parents)


@dataclass
class TreeLayout:
    root_id: str
    positions: dict[str, Point]
    depth: dict[str, int]
    parent_of: dict[str, str]
    # Ids whose children exist but are hidden by collapse.
    hidden_children: set[str]
    order: list[str]

    def __contains__(self, member_id: object) -> bool:
        return member_id in self.positions

    def links(self) -> list[tuple[str, str]]:
        """Visible parent-child edges ``(parent, child)`` in pre-order."""
        return [(self.parent_of[cid], cid) for cid in self.order if cid in self.parent_of]


def _separation(a: _LNode, b: _LNode) -> float:
    return 1.0 if a.parent is b.parent else 2.0


def _next_left(v: _LNode) -> _LNode | None:
    return v.children[0] if v.children else v.t


def _next_right(v: _LNode) -> _LNode | None:
    return v.children[-1] if v.children else v.t


def _move_subtree(wm: _LNode, wp: _LNode, shift: float) -> None:
    change = shift / (wp.i - wm.i)
    wp.c -= change
    wp.s += shift
    wm.c += change
    wp.z += shift
    wp.m += shift


def _execute_shifts(v: _LNode) -> None:
    shift = 0.0
    change = 0.0
    for w in reversed(v.children):
        w.z += shift
        w.m += shift
        change += w.c
        shift += w.s + change


def _next_ancestor(vim: _LNode, v: _LNode, ancestor: _LNode) -> _LNode:
    a = vim.a
    return a if a is not None and a.parent is v.parent else ancestor


def _apportion(v: _LNode, w: _LNode | None, ancestor: _LNode) -> _LNode:
    if w is None:
        return ancestor
    assert v.parent is not None
    vip: _LNode | None = v
    vop: _LNode = v
    vim: _LNode | None = w
    vom: _LNode = v.parent.children[0]
    sip = vip.m
    sop = vop.m
    sim = vim.m
    som = vom.m
    while True:
        vim = _next_right(vim)
        vip = _next_left(vip)
        if vim is None or vip is None:
            break
        vom = _next_left(vom)  # type: ignore[assignment]
        vop = _next_right(vop)  # type: ignore[assignment]
        vop.a = v
        shift = vim.z + sim - vip.z - sip + _separation(vim, vip)
        if shift > 0:
            _move_subtree(_next_ancestor(vim, v, ancestor), v, shift)
            sip += shift
            sop += shift
        sim += vim.m
        sip += vip.m
        som += vom.m
        sop += vop.m
    if vim is not None and _next_right(vop) is None:
        vop.t = vim
        vop.m += sim - sop
    if vip is not None and _next_left(vom) is None:
        vom.t = vip
        vom.m += sip - som
        ancestor = v
    return ancestor


def _first_walk(v: _LNode) -> None:
    siblings = v.parent.children if v.parent is not None else [v]
    w = siblings[v.i - 1] if v.i else None
    if v.children:
        _execute_shifts(v)
        midpoint = (v.children[0].z + v.children[-1].z) / 2
        if w is not None:
            v.z = w.z + _separation(v, w)
            v.m = v.z - midpoint
        else:
            v.z = midpoint
    elif w is not None:
        v.z = w.z + _separation(v, w)
    if v.parent is not None:
        v.parent.A = _apportion(v, w, v.parent.A or siblings[0])


def _build(tree: AssembledTree, collapsed: AbstractSet[str]) -> tuple[_LNode, list[_LNode], set[str]]:
    root = _LNode(tree.root_id, 0)
    root.a = root
    hidden: set[str] = set()
    seen = {root.id}
    stack = [root]
    while stack:
        node = stack.pop()
        kids = [cid for cid in tree.children.get(node.id, []) if cid in tree.members and cid not in seen]
        if not kids:
            continue
        if node.id in collapsed:
            hidden.add(node.id)
            continue
        for idx, cid in enumerate(kids):
            seen.add(cid)
            child = _LNode(cid, node.depth + 1, parent=node, i=idx)
            child.a = child
            node.children.append(child)
        stack.extend(reversed(node.children))
    preorder: list[_LNode] = []
    stack = [root]
    while stack:
        node = stack.pop()
        preorder.append(node)
        stack.extend(reversed(node.children))
    return root, preorder, hidden


def layout_tree(
    tree: AssembledTree,
    collapsed: AbstractSet[str] = frozenset(),
    *,
    node_width: float = NODE_WIDTH,
    level_height: float = LEVEL_HEIGHT,
) -> TreeLayout:
    """Position every visible member; collapsed ids hide their descendants."""

    root, preorder, hidden = _build(tree, collapsed)

    # Post-order: children left to right, then the parent.
    for node in _postorder(root):
        _first_walk(node)

    positions: dict[str, Point] = {}
    depth: dict[str, int] = {}
    parent_of: dict[str, str] = {}
    offset = root.z
    for node in preorder:
        if node.parent is not None:
            node.m += node.parent.m
            x = node.z + node.parent.m
            parent_of[node.id] = node.parent.id
        else:
            x = node.z
        positions[node.id] = Point((x - offset) * node_width, node.depth * level_height)
        depth[node.id] = node.depth

    return TreeLayout(
        root_id=root.id,
        positions=positions,
        depth=depth,
        parent_of=parent_of,
        hidden_children=hidden,
        order=[n.id for n in preorder],
    )


def _postorder(root: _LNode) -> list[_LNode]:
    out: list[_LNode] = []
    stack: list[tuple[_LNode, bool]] = [(root, False)]
    while stack:
        node, done = stack.pop()
        if done:
            out.append(node)
            continue
        stack.append((node, True))
        for child in reversed(node.children):
            stack.append((child, False))
    return out
