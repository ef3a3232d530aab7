"""Client-side controller: current tree, chart state, mutations with re-fetch.

The session never edits its tree in place. Each mutation goes to the
service; on success the whole tree is fetched again and handed to the chart,
which carries collapse state over by member id. On failure the tree is left
as it was and ``notification`` holds the message to show the user.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from . import views
from .assemble import AssembledTree, MarriageEdge, placeholder_tree, tree_from_nested
from .chart import TreeChart
from .client import FamilyClient
from .errors import FamilyTreeError, TransportError
from .models import Member
from .traverse import find_member, find_parent

log = logging.getLogger(__name__)


class FamilySession:
    def __init__(
        self,
        client: FamilyClient,
        *,
        width: float = 800,
        height: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.tree: AssembledTree = placeholder_tree()
        self.notification: Optional[str] = None
        self.selected_id: Optional[str] = None
        self.chart = TreeChart(
            self.tree,
            width=width,
            height=height,
            on_profile=self.open_profile,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _fetch(self) -> AssembledTree:
        payload = self.client.get_family_tree()
        if not isinstance(payload, dict):
            log.error("Family tree payload is not an object: %r", type(payload).__name__)
            raise TransportError("fetch", detail="expected a JSON object")
        try:
            return tree_from_nested(payload)
        except (FamilyTreeError, KeyError, ValueError, TypeError) as e:
            log.error("Malformed family tree payload: %s", e)
            raise TransportError("fetch", detail=str(e)) from e

    def load(self) -> AssembledTree:
        """Initial load; an unreachable service yields the empty placeholder root."""

        try:
            tree = self._fetch()
        except TransportError as e:
            log.error("Failed to load family tree: %s", e.detail or e)
            tree = placeholder_tree()
        self._show(tree)
        return self.tree

    def refresh(self) -> bool:
        """Re-fetch after a mutation; on failure the current tree stays on screen."""

        try:
            tree = self._fetch()
        except TransportError as e:
            log.error("Failed to refresh family tree: %s", e.detail or e)
            return False
        self._show(tree)
        return True

    def _show(self, tree: AssembledTree) -> None:
        self.tree = tree
        self.chart.set_data(tree)
        if self.selected_id is not None and self.selected_id not in tree:
            self.selected_id = None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _run(self, call: Callable[[], Any]) -> bool:
        try:
            call()
        except TransportError as e:
            self.notification = f"{e}. Please try again."
            log.error("%s (status=%s)", e, e.status_code)
            return False
        if self.refresh():
            self.notification = None
        else:
            self.notification = f"{TransportError('fetch')}. Please try again."
        return True

    def add_member(self, parent_id: str, member: dict[str, Any], *, link_spouse: bool = False) -> bool:
        return self._run(lambda: self.client.add_member(parent_id, member, link_spouse))

    def update_member(self, member_id: str, updates: dict[str, Any]) -> bool:
        return self._run(lambda: self.client.update_member(member_id, updates))

    def delete_member(self, member_id: str) -> bool:
        return self._run(lambda: self.client.delete_member(member_id))

    def link_members(self, member_id1: str, member_id2: str) -> bool:
        return self._run(lambda: self.client.link_members(member_id1, member_id2))

    def unlink_members(self, member_id1: str, member_id2: str) -> bool:
        return self._run(lambda: self.client.unlink_members(member_id1, member_id2))

    def dismiss_notification(self) -> None:
        self.notification = None

    def expand_all(self) -> None:
        self.chart.expand_all()

    # ------------------------------------------------------------------
    # Profile and views
    # ------------------------------------------------------------------

    def open_profile(self, member: Member) -> None:
        self.selected_id = member.id

    def close_profile(self) -> None:
        self.selected_id = None

    @property
    def selected(self) -> Optional[Member]:
        return find_member(self.tree, self.selected_id) if self.selected_id else None

    def member(self, member_id: str) -> Optional[Member]:
        return find_member(self.tree, member_id)

    def parent_of(self, member_id: str) -> Optional[Member]:
        return find_parent(self.tree, member_id)

    def spouses_of(self, member_id: str) -> list[Member]:
        return views.spouses_for_display(self.tree, member_id)

    def search(self, query: str) -> list[Member]:
        return views.search(self.tree, query)

    def timeline(self) -> list[Member]:
        return views.timeline(self.tree)

    def gallery(self) -> list[Member]:
        return views.gallery(self.tree)

    def marriages(self) -> list[MarriageEdge]:
        return list(self.tree.marriages)

    def linked_pairs(self) -> list[tuple[Member, Member]]:
        return views.linked_pairs(self.tree)

    def manageable_members(self, query: str = "") -> list[Member]:
        return views.manageable_members(self.tree, query)
