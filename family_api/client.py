"""HTTP client for the family tree service.

Every call either returns the decoded JSON body or raises ``TransportError``
carrying the user-facing operation ("fetch", "add", "link", ...).
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .config import DEFAULT_API_URL
from .errors import TransportError

log = logging.getLogger(__name__)


class FamilyClient:
    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._http = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> FamilyClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._http.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            log.error("%s %s timed out (%s)", method, path, operation)
            raise TransportError(operation, detail=f"timeout: {e}") from e
        except httpx.RequestError as e:
            log.error("%s %s failed (%s): %s", method, path, operation, e)
            raise TransportError(operation, detail=str(e)) from e

        if response.is_error:
            log.error("%s %s returned %d (%s)", method, path, response.status_code, operation)
            raise TransportError(operation, status_code=response.status_code, detail=response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            log.error("%s %s returned invalid JSON (%s)", method, path, operation)
            raise TransportError(operation, status_code=response.status_code, detail=str(e)) from e

    # -- tree --------------------------------------------------------------

    def get_family_tree(self) -> dict[str, Any]:
        return self._request("fetch", "GET", "/family")

    def add_member(self, parent_id: str, member: dict[str, Any], should_link_spouse: bool = False) -> dict[str, Any]:
        body = {"parentId": parent_id, "member": member, "shouldLinkSpouse": should_link_spouse}
        return self._request("add", "POST", "/family/members", json=body)

    def update_member(self, member_id: str, updates: dict[str, Any]) -> dict[str, Any]:
        return self._request("update", "PUT", f"/family/members/{member_id}", json=updates)

    def delete_member(self, member_id: str, *, allow_root: bool = False) -> dict[str, Any]:
        params = {"allowRoot": "true"} if allow_root else None
        return self._request("delete", "DELETE", f"/family/members/{member_id}", params=params)

    def link_members(self, member_id1: str, member_id2: str) -> dict[str, Any]:
        return self._request("link", "POST", "/family/link", json={"memberId1": member_id1, "memberId2": member_id2})

    def unlink_members(self, member_id1: str, member_id2: str) -> dict[str, Any]:
        return self._request("unlink", "POST", "/family/unlink", json={"memberId1": member_id1, "memberId2": member_id2})

    # -- collaborators -----------------------------------------------------

    def generate_bio(self, name: str, birth_year: Any, relation: str, keywords: str = "") -> str:
        body = {"name": name, "birthYear": birth_year, "relation": relation, "keywords": keywords}
        return self._request("bio", "POST", "/family/bio", json=body)["bio"]

    def crop_photo(self, image: str, *, zoom: float = 1.0, offset_x: float = 0.0, offset_y: float = 0.0) -> str:
        body = {"image": image, "zoom": zoom, "offsetX": offset_x, "offsetY": offset_y}
        return self._request("crop", "POST", "/media/crop", json=body)["photoUrl"]
