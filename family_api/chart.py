"""Interactive tree chart: collapse state, animated re-layout, pan and zoom.

``TreeChart`` owns only UI state (the collapsed set, keyed by member id,
and the viewport transform). The assembled tree it draws is replaced
wholesale by ``set_data`` after every mutation; UI state is carried over by
id, never by object identity.

Every topology or position change starts a transition from whatever is on
screen at that instant, so a click during an animation simply retargets it.
Frames are sampled on demand with ``frame()``; the clock is injectable.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from .assemble import AssembledTree
from .errors import NotFound
from .layout import Point, TreeLayout, layout_tree
from .models import Member
from .render import (
    NODE_RADIUS,
    Frame,
    NodeGlyph,
    Transform,
    clamp_scale,
    initial_transform,
    make_glyph,
    make_link,
    make_marriage,
    marriage_key,
    visible_marriages,
)

log = logging.getLogger(__name__)

TRANSITION_SECONDS = 0.5
CENTER_SECONDS = 0.75
_HIDDEN_RADIUS = 1e-6


def ease_cubic_in_out(t: float) -> float:
    t = max(0.0, min(1.0, t)) * 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


@dataclass(frozen=True)
class _Track:
    start: Point
    end: Point
    state: str  # enter | update | exit
    glyph: NodeGlyph


@dataclass(frozen=True)
class _Edge:
    source: str
    target: str
    state: str


@dataclass
class _Transition:
    started: float
    duration: float
    nodes: dict[str, _Track]
    links: list[_Edge]
    marriages: list[_Edge]

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return max(0.0, min(1.0, (now - self.started) / self.duration))


@dataclass
class _Pan:
    started: float
    duration: float
    start: Transform
    end: Transform

    def at(self, now: float) -> Transform:
        p = 1.0 if self.duration <= 0 else (now - self.started) / self.duration
        return self.start.lerp(self.end, ease_cubic_in_out(p))

    def done(self, now: float) -> bool:
        return now - self.started >= self.duration


class TreeChart:
    def __init__(
        self,
        tree: AssembledTree,
        *,
        width: float = 800,
        height: float = 600,
        on_profile: Callable[[Member], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        duration: float = TRANSITION_SECONDS,
        center_duration: float = CENTER_SECONDS,
    ) -> None:
        self._tree = tree
        self.width = float(width)
        self.height = float(height)
        self.on_profile = on_profile
        self._clock = clock
        self.duration = duration
        self.center_duration = center_duration

        self.collapsed: set[str] = set()
        self._transform = initial_transform(self.width, self.height)
        self._pan: _Pan | None = None

        self._layout: TreeLayout = layout_tree(tree, self.collapsed)
        self._transition: _Transition | None = None
        # Settled state (the x0/y0 of every drawn node once the last transition ends).
        self._settled: dict[str, Point] = {}
        self._glyphs: dict[str, NodeGlyph] = {}
        self._links: list[_Edge] = []
        self._marriages: list[_Edge] = []

        self._relayout(self._tree.root_id)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def tree(self) -> AssembledTree:
        return self._tree

    @property
    def layout(self) -> TreeLayout:
        return self._layout

    @property
    def visible_ids(self) -> list[str]:
        return list(self._layout.order)

    def transform(self, now: float | None = None) -> Transform:
        now = self._clock() if now is None else now
        if self._pan is not None:
            if self._pan.done(now):
                self._transform = self._pan.end
                self._pan = None
            else:
                return self._pan.at(now)
        return self._transform

    def is_animating(self, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        moving = self._transition is not None and self._transition.progress(now) < 1.0
        panning = self._pan is not None and not self._pan.done(now)
        return moving or panning

    # ------------------------------------------------------------------
    # Data and container changes
    # ------------------------------------------------------------------

    def set_data(self, tree: AssembledTree) -> None:
        """Swap in a freshly assembled tree, keeping collapse state by id."""

        dropped = {mid for mid in self.collapsed if mid not in tree}
        if dropped:
            log.debug("Dropping collapse state for removed member(s): %s", sorted(dropped))
        self.collapsed -= dropped
        self._tree = tree
        self._relayout(tree.root_id)

    def resize(self, width: float, height: float) -> None:
        self.width = float(width)
        self.height = float(height)
        self._relayout(self._tree.root_id)

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def toggle(self, member_id: str) -> None:
        """Node click: expand/collapse its subtree and re-centre on it."""

        if member_id not in self._layout:
            raise NotFound(member_id, f"member not visible: {member_id}")
        if member_id in self.collapsed:
            self.collapsed.discard(member_id)
        elif self._tree.has_children(member_id):
            self.collapsed.add(member_id)
        self._relayout(member_id)
        self.center_on(member_id)

    def click_label(self, member_id: str) -> None:
        """Label click: open the profile and re-centre, without toggling."""

        if member_id not in self._layout:
            raise NotFound(member_id, f"member not visible: {member_id}")
        if self.on_profile is not None:
            self.on_profile(self._tree.members[member_id])
        self.center_on(member_id)

    def expand_all(self) -> None:
        self.collapsed.clear()
        self._relayout(self._tree.root_id)

    def center_on(self, member_id: str) -> None:
        """Animate the viewport so the member sits mid-width, a third down."""

        target = self._layout.positions.get(member_id)
        if target is None:
            raise NotFound(member_id, f"member not visible: {member_id}")
        now = self._clock()
        current = self.transform(now)
        k = current.k
        end = Transform(-target.x * k + self.width / 2, -target.y * k + self.height / 3, k)
        self._pan = _Pan(now, self.center_duration, current, end)

    def pan(self, dx: float, dy: float) -> None:
        current = self.transform()
        self._pan = None
        self._transform = current.translated(dx, dy)

    def zoom(self, factor: float, around: Point | None = None) -> None:
        """Scale by ``factor`` keeping the screen point ``around`` fixed."""

        current = self.transform()
        self._pan = None
        anchor = around or Point(self.width / 2, self.height / 2)
        k = clamp_scale(current.k * factor)
        ratio = k / current.k
        self._transform = Transform(
            anchor.x - (anchor.x - current.x) * ratio,
            anchor.y - (anchor.y - current.y) * ratio,
            k,
        )

    def zoom_to(self, k: float) -> None:
        current = self.transform()
        self.zoom(clamp_scale(k) / current.k)

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------

    def frame(self, now: float | None = None) -> Frame:
        now = self._clock() if now is None else now
        transform = self.transform(now)
        positions, glyphs = self._sample(now)

        frame = Frame(width=self.width, height=self.height, transform=transform)
        p = self._eased(now)
        for edge in self._marriage_edges():
            s, t = positions.get(edge.source), positions.get(edge.target)
            if s is None or t is None:
                continue
            opacity = {"enter": p, "exit": 1.0 - p}.get(edge.state, 1.0)
            frame.marriages.append(make_marriage(edge.source, edge.target, s, t, opacity))
        for edge in self._link_edges():
            s, t = positions.get(edge.source), positions.get(edge.target)
            if s is None or t is None:
                continue
            frame.links.append(make_link(edge.source, edge.target, s, t))
        frame.nodes.extend(glyphs)
        return frame

    def settle(self) -> Frame:
        """Jump every running animation to its end state."""

        self._finish()
        if self._pan is not None:
            self._transform = self._pan.end
            self._pan = None
        return self.frame()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _eased(self, now: float) -> float:
        if self._transition is None:
            return 1.0
        return ease_cubic_in_out(self._transition.progress(now))

    def _finish(self) -> None:
        tr = self._transition
        if tr is None:
            return
        self._settled = {mid: tk.end for mid, tk in tr.nodes.items() if tk.state != "exit"}
        self._glyphs = {mid: replace(tk.glyph, state="update") for mid, tk in tr.nodes.items() if tk.state != "exit"}
        self._links = [replace(e, state="update") for e in tr.links if e.state != "exit"]
        self._marriages = [replace(e, state="update") for e in tr.marriages if e.state != "exit"]
        self._transition = None

    def _link_edges(self) -> list[_Edge]:
        return self._transition.links if self._transition is not None else self._links

    def _marriage_edges(self) -> list[_Edge]:
        return self._transition.marriages if self._transition is not None else self._marriages

    def _sample(self, now: float) -> tuple[dict[str, Point], list[NodeGlyph]]:
        tr = self._transition
        if tr is not None and tr.progress(now) >= 1.0:
            self._finish()
            tr = None
        if tr is None:
            glyphs = [
                replace(self._glyphs[mid], x=self._settled[mid].x, y=self._settled[mid].y)
                for mid in self._glyphs
            ]
            return dict(self._settled), glyphs

        p = ease_cubic_in_out(tr.progress(now))
        positions: dict[str, Point] = {}
        glyphs: list[NodeGlyph] = []
        for mid, tk in tr.nodes.items():
            at = tk.start.lerp(tk.end, p)
            positions[mid] = at
            if tk.state == "enter":
                radius = _HIDDEN_RADIUS + (NODE_RADIUS - _HIDDEN_RADIUS) * p
                label_opacity = p
            elif tk.state == "exit":
                radius = NODE_RADIUS + (_HIDDEN_RADIUS - NODE_RADIUS) * p
                label_opacity = 1.0 - p
            else:
                radius, label_opacity = NODE_RADIUS, 1.0
            glyphs.append(
                replace(tk.glyph, x=at.x, y=at.y, radius=radius, label_opacity=label_opacity, state=tk.state)
            )
        return positions, glyphs

    def _relayout(self, source_id: str) -> None:
        """Re-run layout and start a transition from what is on screen now."""

        now = self._clock()
        current, _ = self._sample(now)
        old_parent = dict(self._layout.parent_of)
        old_glyphs = self._glyph_index()
        old_links = {e.target: e for e in self._link_edges()}
        old_marriages = {marriage_key(e.source, e.target): e for e in self._marriage_edges()}

        new = layout_tree(self._tree, self.collapsed)
        new_pos = new.positions
        source_now = current.get(source_id, Point(0.0, 0.0))

        nodes: dict[str, _Track] = {}
        for mid in new.order:
            glyph = make_glyph(self._tree, new, mid, new_pos[mid])
            if mid in current:
                nodes[mid] = _Track(current[mid], new_pos[mid], "update", glyph)
            else:
                start = self._enter_anchor(mid, new, current, source_now)
                nodes[mid] = _Track(start, new_pos[mid], "enter", glyph)

        for mid, at in current.items():
            if mid in new_pos:
                continue
            glyph = old_glyphs.get(mid)
            if glyph is None:
                continue
            end = self._exit_anchor(mid, old_parent, new_pos, new_pos.get(source_id, new_pos[new.root_id]))
            nodes[mid] = _Track(at, end, "exit", glyph)

        links = [_Edge(p, c, "update" if c in old_links else "enter") for p, c in new.links()]
        live_links = {e.target for e in links}
        links.extend(replace(e, state="exit") for c, e in old_links.items() if c not in live_links and c in nodes)

        marriages = [
            _Edge(a, b, "update" if marriage_key(a, b) in old_marriages else "enter")
            for a, b in visible_marriages(self._tree, new)
        ]
        live_pairs = {marriage_key(e.source, e.target) for e in marriages}
        marriages.extend(replace(e, state="exit") for k, e in old_marriages.items() if k not in live_pairs)

        self._layout = new
        self._transition = _Transition(now, self.duration, nodes, links, marriages)
        if self.duration <= 0:
            self._finish()

    def _glyph_index(self) -> dict[str, NodeGlyph]:
        if self._transition is not None:
            return {mid: tk.glyph for mid, tk in self._transition.nodes.items()}
        return dict(self._glyphs)

    @staticmethod
    def _enter_anchor(mid: str, new: TreeLayout, current: dict[str, Point], fallback: Point) -> Point:
        """Entering nodes grow out of the prior position of their nearest drawn ancestor."""

        cur = new.parent_of.get(mid)
        while cur is not None:
            if cur in current:
                return current[cur]
            cur = new.parent_of.get(cur)
        return fallback

    @staticmethod
    def _exit_anchor(mid: str, old_parent: dict[str, str], new_pos: dict[str, Point], fallback: Point) -> Point:
        """Exiting nodes shrink into the new position of their nearest surviving ancestor."""

        seen = {mid}
        cur = old_parent.get(mid)
        while cur is not None and cur not in seen:
            if cur in new_pos:
                return new_pos[cur]
            seen.add(cur)
            cur = old_parent.get(cur)
        return fallback
