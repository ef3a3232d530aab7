"""Family tree CRUD, spouse linking and read-only views."""

from __future__ import annotations

import logging
from typing import Any, Callable, NoReturn, Optional, Union

import psycopg
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict

from ..assemble import AssembledTree, assemble_or_placeholder
from ..bio import BioGenerator
from ..deps import get_bio, get_store
from ..errors import FamilyTreeError, NotFound, RootInvariantViolation, ValidationError
from ..models import Member, Relationship
from ..mutations import (
    Changeset,
    MemberDraft,
    Snapshot,
    add_member,
    delete_member,
    link_members,
    resolve_member_id,
    unlink_members,
    update_member,
)
from ..store import MemberStore
from .. import views

log = logging.getLogger(__name__)

router = APIRouter(prefix="/family", tags=["family"])

Year = Optional[Union[int, str]]


class MetadataIn(BaseModel):
    location: Optional[str] = None
    motherName: Optional[str] = None


class MemberIn(BaseModel):
    # Clients post whole tree nodes (id, children, ...); only these fields are read.
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    gender: str = "male"
    relationship: Optional[str] = None
    birthYear: Year = None
    deathYear: Year = None
    photoUrl: Optional[str] = None
    spouseName: Optional[str] = None
    spouseId: Optional[str] = None
    metadata: Optional[MetadataIn] = None


class AddMemberBody(BaseModel):
    parentId: str
    member: MemberIn
    shouldLinkSpouse: bool = False


class MemberUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    gender: Optional[str] = None
    birthYear: Year = None
    deathYear: Year = None
    photoUrl: Optional[str] = None
    spouseName: Optional[str] = None
    metadata: Optional[MetadataIn] = None


class LinkBody(BaseModel):
    memberId1: str
    memberId2: str


class BioRequest(BaseModel):
    name: str
    birthYear: Year = None
    relation: str = ""
    keywords: str = ""


_UPDATE_FIELDS = {
    "name": "name",
    "gender": "gender",
    "birthYear": "birth_year",
    "deathYear": "death_year",
    "photoUrl": "photo_url",
    "spouseName": "spouse_name",
}
_METADATA_FIELDS = {"location": "location", "motherName": "mother_name"}


def _changes(body: MemberUpdate) -> dict[str, Any]:
    """Only the fields the client actually sent (``null`` clears)."""

    sent = body.model_dump(exclude_unset=True)
    out = {_UPDATE_FIELDS[k]: v for k, v in sent.items() if k in _UPDATE_FIELDS}
    if body.metadata is not None:
        for k, v in body.metadata.model_dump(exclude_unset=True).items():
            out[_METADATA_FIELDS[k]] = v
    return out


def _draft(m: MemberIn) -> MemberDraft:
    meta = m.metadata or MetadataIn()
    return MemberDraft(
        name=m.name,
        gender=m.gender,
        relationship=m.relationship,
        birth_year=m.birthYear,
        death_year=m.deathYear,
        photo_url=m.photoUrl,
        spouse_name=m.spouseName,
        spouse_id=m.spouseId,
        mother_name=meta.motherName,
        location=meta.location,
    )


def _raise_http(e: FamilyTreeError) -> NoReturn:
    if isinstance(e, NotFound):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=422, detail={"error": str(e), "field": e.field}) from e
    if isinstance(e, RootInvariantViolation):
        raise HTTPException(status_code=409, detail=str(e)) from e
    raise HTTPException(status_code=500, detail=str(e)) from e


def _mutate(store: MemberStore, build: Callable[[Snapshot], Changeset], failure: str) -> Changeset:
    try:
        return store.mutate(build)
    except FamilyTreeError as e:
        _raise_http(e)
    except psycopg.Error as e:
        log.exception("%s", failure)
        raise HTTPException(status_code=500, detail={"error": failure, "details": str(e)}) from e


def _load_tree(store: MemberStore) -> AssembledTree:
    try:
        return assemble_or_placeholder(store.list_members())
    except psycopg.Error as e:
        log.exception("Failed to fetch family tree")
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to fetch family tree", "details": str(e)},
        ) from e


def _wire(members: list[Member]) -> list[dict[str, Any]]:
    return [m.to_wire() for m in members]


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


@router.get("")
def get_family(store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    return _load_tree(store).to_nested()


@router.get("/members")
def list_members(store: MemberStore = Depends(get_store)) -> list[dict[str, Any]]:
    try:
        return _wire(store.list_members())
    except psycopg.Error as e:
        log.exception("Failed to list members")
        raise HTTPException(status_code=500, detail={"error": "Failed to list members", "details": str(e)}) from e


@router.get("/marriages")
def list_marriages(store: MemberStore = Depends(get_store)) -> list[dict[str, Any]]:
    tree = _load_tree(store)
    return [e.to_public() for e in tree.marriages]


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


@router.post("/members", status_code=201)
def create_member(body: AddMemberBody, store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    created: list[Member] = []

    def build(snapshot: Snapshot) -> Changeset:
        cs, member = add_member(
            snapshot,
            body.parentId,
            _draft(body.member),
            link_as_spouse=body.shouldLinkSpouse,
        )
        created.append(member)
        return cs

    _mutate(store, build, "Failed to add member")
    # Read back so createdAt carries the stored timestamp.
    stored = store.get(created[-1].id)
    return (stored or created[-1]).to_wire()


@router.put("/members/{member_id}")
def edit_member(member_id: str, body: MemberUpdate, store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    changes = _changes(body)
    resolved: list[str] = []

    def build(snapshot: Snapshot) -> Changeset:
        resolved.append(resolve_member_id(snapshot, member_id))
        return update_member(snapshot, member_id, changes)

    _mutate(store, build, "Failed to update member")
    member = store.get(resolved[-1])
    if member is None:
        raise HTTPException(status_code=404, detail=f"member not found: {member_id}")
    return member.to_wire()


@router.delete("/members/{member_id}")
def remove_member(
    member_id: str,
    allow_root: bool = Query(default=False, alias="allowRoot"),
    store: MemberStore = Depends(get_store),
) -> dict[str, Any]:
    def build(snapshot: Snapshot) -> Changeset:
        target = resolve_member_id(snapshot, member_id)
        if snapshot[target].relationship is Relationship.ROOT and not allow_root:
            raise RootInvariantViolation("Refusing to delete the root member (pass allowRoot=true)")
        return delete_member(snapshot, target)

    cs = _mutate(store, build, "Failed to delete member")
    return {"success": True, "deleted": cs.deleted}


@router.post("/link")
def link(body: LinkBody, store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    _mutate(store, lambda s: link_members(s, body.memberId1, body.memberId2), "Failed to link members")
    return {"success": True}


@router.post("/unlink")
def unlink(body: LinkBody, store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    _mutate(store, lambda s: unlink_members(s, body.memberId1, body.memberId2), "Failed to unlink members")
    return {"success": True}


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@router.get("/search")
def search_members(
    q: str = Query(default="", max_length=200),
    store: MemberStore = Depends(get_store),
) -> dict[str, Any]:
    return {"query": q, "results": _wire(views.search(_load_tree(store), q))}


@router.get("/timeline")
def timeline(store: MemberStore = Depends(get_store)) -> list[dict[str, Any]]:
    return _wire(views.timeline(_load_tree(store)))


@router.get("/gallery")
def gallery(store: MemberStore = Depends(get_store)) -> list[dict[str, Any]]:
    return _wire(views.gallery(_load_tree(store)))


@router.get("/members/{member_id}/spouses")
def member_spouses(member_id: str, store: MemberStore = Depends(get_store)) -> dict[str, Any]:
    tree = _load_tree(store)
    try:
        resolved = resolve_member_id(tree.members, member_id)
    except NotFound as e:
        _raise_http(e)
    member = tree.members[resolved]
    return {
        "id": resolved,
        "role": views.role_label(member),
        "spouses": _wire(views.spouses_for_display(tree, resolved)),
    }


@router.post("/bio")
def generate_bio(body: BioRequest, bio: BioGenerator = Depends(get_bio)) -> dict[str, str]:
    return {"bio": bio.generate(body.name, body.birthYear, body.relation, body.keywords)}
