"""Static chart snapshots: the laid-out tree as JSON primitives or as SVG."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from ..deps import get_store
from ..layout import layout_tree
from ..render import frame_to_svg, initial_transform, snapshot
from ..store import MemberStore
from .family import _load_tree

router = APIRouter(prefix="/family", tags=["chart"])


def _frame(store: MemberStore, collapsed: Optional[list[str]], width: float, height: float):
    tree = _load_tree(store)
    # Unknown ids are ignored: collapse state may outlive a deleted member.
    hidden = {mid for mid in (collapsed or []) if mid in tree}
    layout = layout_tree(tree, hidden)
    return snapshot(tree, layout, initial_transform(width, height), width=width, height=height)


@router.get("/chart")
def chart(
    collapsed: Optional[list[str]] = Query(default=None),
    width: float = Query(default=800, gt=0, le=10000),
    height: float = Query(default=600, gt=0, le=10000),
    store: MemberStore = Depends(get_store),
) -> dict[str, Any]:
    return _frame(store, collapsed, width, height).to_public()


@router.get("/chart.svg")
def chart_svg(
    collapsed: Optional[list[str]] = Query(default=None),
    width: float = Query(default=800, gt=0, le=10000),
    height: float = Query(default=600, gt=0, le=10000),
    store: MemberStore = Depends(get_store),
) -> Response:
    svg = frame_to_svg(_frame(store, collapsed, width, height))
    return Response(content=svg, media_type="image/svg+xml")
