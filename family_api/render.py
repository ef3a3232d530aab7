"""Scene primitives for the tree diagram and their SVG serialisation.

A ``Frame`` is one drawable state of the chart: a viewport transform plus
three layers painted back to front (marriage arcs, parent-child links,
node glyphs), so marriage arcs never cover a node.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from html import escape
from typing import Any, Iterable

from .assemble import AssembledTree
from .layout import Point, TreeLayout
from .models import Member, Relationship

NODE_RADIUS = 24.0
LABEL_OFFSET = 35.0
MIN_ARC_HEIGHT = 60.0
ARC_HEIGHT_RATIO = 0.2
SCALE_EXTENT = (0.1, 4.0)

USER_ICON_PATH = (
    "M12,4A4,4 0 0,1 16,8A4,4 0 0,1 12,12A4,4 0 0,1 8,8A4,4 0 0,1 12,4"
    "M12,14C16.42,14 20,15.79 20,18V20H4V18C4,15.79 7.58,14 12,14Z"
)

# kind -> (fill, stroke)
GLYPH_COLORS: dict[str, tuple[str, str]] = {
    "root": ("#163c2c", "#0f291e"),
    "spouse": ("#b4942b", "#917622"),
    "collapsed": ("#f5eadb", "#163c2c"),
    "internal": ("#ffffff", "#a8a29e"),
    "leaf": ("#ffffff", "#a8a29e"),
}
LINK_STROKE = "#a8a29e"
MARRIAGE_STROKE = "#d4af37"

LAYERS = ("marriage", "links", "nodes")


@dataclass(frozen=True)
class Transform:
    """Viewport transform: screen = point * k + (x, y)."""

    x: float = 0.0
    y: float = 0.0
    k: float = 1.0

    def apply(self, p: Point) -> Point:
        return Point(p.x * self.k + self.x, p.y * self.k + self.y)

    def invert(self, p: Point) -> Point:
        return Point((p.x - self.x) / self.k, (p.y - self.y) / self.k)

    def translated(self, dx: float, dy: float) -> Transform:
        return Transform(self.x + dx, self.y + dy, self.k)

    def lerp(self, other: Transform, t: float) -> Transform:
        return Transform(
            self.x + (other.x - self.x) * t,
            self.y + (other.y - self.y) * t,
            self.k + (other.k - self.k) * t,
        )

    def to_svg(self) -> str:
        return f"translate({_fmt(self.x)},{_fmt(self.y)}) scale({_fmt(self.k)})"


def clamp_scale(k: float) -> float:
    lo, hi = SCALE_EXTENT
    return max(lo, min(hi, k))


@dataclass(frozen=True)
class NodeGlyph:
    id: str
    x: float
    y: float
    kind: str
    label: str
    photo_url: str | None = None
    radius: float = NODE_RADIUS
    label_opacity: float = 1.0
    state: str = "update"


@dataclass(frozen=True)
class EdgePath:
    key: str
    kind: str
    source: str
    target: str
    d: str
    opacity: float = 1.0


@dataclass
class Frame:
    width: float
    height: float
    transform: Transform
    marriages: list[EdgePath] = field(default_factory=list)
    links: list[EdgePath] = field(default_factory=list)
    nodes: list[NodeGlyph] = field(default_factory=list)

    def layers(self) -> list[tuple[str, list[Any]]]:
        return [("marriage", self.marriages), ("links", self.links), ("nodes", self.nodes)]

    def node(self, member_id: str) -> NodeGlyph | None:
        for g in self.nodes:
            if g.id == member_id:
                return g
        return None

    def to_public(self) -> dict[str, Any]:
        return {
            "width": self.width,
            "height": self.height,
            "transform": asdict(self.transform),
            "layers": {name: [asdict(item) for item in items] for name, items in self.layers()},
        }


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------


def diagonal(s: Point, t: Point) -> str:
    """Vertical cubic link from parent ``s`` down to child ``t``."""

    my = (s.y + t.y) / 2
    return (
        f"M {_fmt(s.x)} {_fmt(s.y)} "
        f"C {_fmt(s.x)} {_fmt(my)}, {_fmt(t.x)} {_fmt(my)}, {_fmt(t.x)} {_fmt(t.y)}"
    )


def arc_control_point(s: Point, t: Point) -> Point:
    """Control point lifted above the higher spouse by max(60, 0.2 * dx)."""

    height = max(MIN_ARC_HEIGHT, abs(t.x - s.x) * ARC_HEIGHT_RATIO)
    return Point((s.x + t.x) / 2, min(s.y, t.y) - height)


def marriage_arc(s: Point, t: Point) -> str:
    c = arc_control_point(s, t)
    return f"M {_fmt(s.x)} {_fmt(s.y)} Q {_fmt(c.x)} {_fmt(c.y)} {_fmt(t.x)} {_fmt(t.y)}"


def truncate_label(name: str) -> str:
    return name[:12] + "..." if len(name) > 15 else name


def glyph_kind(member: Member, *, collapsed: bool, has_children: bool) -> str:
    if member.relationship is Relationship.ROOT:
        return "root"
    if member.relationship is Relationship.SPOUSE:
        return "spouse"
    if collapsed:
        return "collapsed"
    return "internal" if has_children else "leaf"


def link_key(child_id: str) -> str:
    return child_id


def marriage_key(a: str, b: str) -> str:
    return "-".join(sorted((a, b)))


def make_link(parent_id: str, child_id: str, s: Point, t: Point, opacity: float = 1.0) -> EdgePath:
    return EdgePath(link_key(child_id), "link", parent_id, child_id, diagonal(s, t), opacity)


def make_marriage(a: str, b: str, s: Point, t: Point, opacity: float = 1.0) -> EdgePath:
    return EdgePath(marriage_key(a, b), "marriage", a, b, marriage_arc(s, t), opacity)


def make_glyph(
    tree: AssembledTree,
    layout: TreeLayout,
    member_id: str,
    at: Point,
    **overrides: Any,
) -> NodeGlyph:
    member = tree.members[member_id]
    kind = glyph_kind(
        member,
        collapsed=member_id in layout.hidden_children,
        has_children=tree.has_children(member_id),
    )
    return NodeGlyph(
        id=member_id,
        x=at.x,
        y=at.y,
        kind=kind,
        label=truncate_label(member.name),
        photo_url=member.photo_url,
        **overrides,
    )


def visible_marriages(tree: AssembledTree, layout: TreeLayout) -> list[tuple[str, str]]:
    return [(e.source, e.target) for e in tree.marriages if e.source in layout and e.target in layout]


def snapshot(
    tree: AssembledTree,
    layout: TreeLayout,
    transform: Transform,
    *,
    width: float,
    height: float,
) -> Frame:
    """The settled frame for ``layout`` (no transition in flight)."""

    pos = layout.positions
    return Frame(
        width=width,
        height=height,
        transform=transform,
        marriages=[make_marriage(a, b, pos[a], pos[b]) for a, b in visible_marriages(tree, layout)],
        links=[make_link(p, c, pos[p], pos[c]) for p, c in layout.links()],
        nodes=[make_glyph(tree, layout, mid, pos[mid]) for mid in layout.order],
    )


def initial_transform(width: float, height: float) -> Transform:
    return Transform(width / 2, 80.0, 0.85)


# ---------------------------------------------------------------------------
# SVG
# ---------------------------------------------------------------------------


def _fmt(v: float) -> str:
    s = f"{v:.2f}".rstrip("0").rstrip(".")
    return "0" if s in ("-0", "") else s


def _attrs(**kw: Any) -> str:
    parts = []
    for k, v in kw.items():
        if v is None:
            continue
        if isinstance(v, float):
            v = _fmt(v)
        parts.append(f'{k.rstrip("_").replace("_", "-")}="{escape(str(v), quote=True)}"')
    return " ".join(parts)


def _svg_edges(paths: Iterable[EdgePath], css_class: str, **style: Any) -> list[str]:
    return [
        f"<path {_attrs(class_=css_class, d=p.d, fill='none', opacity=p.opacity, **style)}/>"
        for p in paths
    ]


def _svg_node(g: NodeGlyph) -> list[str]:
    fill, stroke = GLYPH_COLORS.get(g.kind, GLYPH_COLORS["leaf"])
    out = [
        f"<g {_attrs(class_=f'node node-{g.kind}', transform=f'translate({_fmt(g.x)},{_fmt(g.y)})', data_id=g.id)}>",
        f"<circle {_attrs(class_='node-circle', r=g.radius, fill=fill, stroke=stroke, stroke_width=2)}/>",
    ]
    if g.photo_url:
        clip = f"clip-{g.id}"
        out.append(f"<defs><clipPath {_attrs(id=clip)}><circle {_attrs(r=g.radius)}/></clipPath></defs>")
        image = _attrs(
            href=g.photo_url,
            x=-g.radius,
            y=-g.radius,
            width=2 * g.radius,
            height=2 * g.radius,
            clip_path="url(#" + clip + ")",
            preserveAspectRatio="xMidYMid slice",
        )
        out.append(f"<image {image}/>")
    else:
        icon = "#fdfbf7" if g.kind in ("root", "spouse") else "#a8a29e"
        out.append(f"<path {_attrs(d=USER_ICON_PATH, transform='translate(-12, -12)', fill=icon)}/>")
    text = _attrs(
        class_="node-label",
        y=LABEL_OFFSET,
        dy=".35em",
        text_anchor="middle",
        fill="#1c1917",
        fill_opacity=g.label_opacity,
        font_size="11px",
        font_weight="600",
    )
    out.append(f"<text {text}>{escape(g.label)}</text>")
    out.append("</g>")
    return out


def frame_to_svg(frame: Frame) -> str:
    lines = [
        f'<svg xmlns="http://www.w3.org/2000/svg" {_attrs(viewBox=f"0 0 {_fmt(frame.width)} {_fmt(frame.height)}", font_family="Merriweather Sans, sans-serif")}>',
        f"<g {_attrs(transform=frame.transform.to_svg())}>",
        '<g class="layer-marriage">',
        *_svg_edges(frame.marriages, "marriage-link", stroke=MARRIAGE_STROKE, stroke_width=2, stroke_dasharray="4, 4"),
        "</g>",
        '<g class="layer-links">',
        *_svg_edges(frame.links, "link", stroke=LINK_STROKE, stroke_width=1.5),
        "</g>",
        '<g class="layer-nodes">',
    ]
    for g in frame.nodes:
        lines.extend(_svg_node(g))
    lines.extend(["</g>", "</g>", "</svg>"])
    return "\n".join(lines)
