"""Member records: the flat, persisted shape of a person in the lineage."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

# Logical id callers may use for "the tree root" before they know its record id.
ROOT_SENTINEL = "root"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class Relationship(str, Enum):
    ROOT = "root"
    SPOUSE = "spouse"
    CHILD = "child"


# Column order used by every SELECT against the member table.
MEMBER_COLUMNS: tuple[str, ...] = (
    "id",
    "name",
    "gender",
    "relationship",
    "birth_year",
    "death_year",
    "photo_url",
    "spouse_name",
    "spouse_id",
    "parent_id",
    "mother_name",
    "location",
    "created_at",
)

# Fields a partial update may touch (snake_case attribute names).
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "gender",
        "birth_year",
        "death_year",
        "photo_url",
        "spouse_name",
        "mother_name",
        "location",
    }
)

_WIRE_NAMES: dict[str, str] = {
    "birth_year": "birthYear",
    "death_year": "deathYear",
    "photo_url": "photoUrl",
    "spouse_name": "spouseName",
    "spouse_id": "spouseId",
    "parent_id": "parentId",
    "mother_name": "motherName",
    "created_at": "createdAt",
}


@dataclass
class Member:
    id: str
    name: str
    gender: Gender = Gender.MALE
    relationship: Relationship = Relationship.CHILD
    birth_year: int | None = None
    death_year: int | None = None
    photo_url: str | None = None
    spouse_name: str | None = None
    spouse_id: str | None = None
    parent_id: str | None = None
    mother_name: str | None = None
    location: str | None = None
    created_at: datetime | None = field(default=None, compare=False)

    def copy(self, **changes: Any) -> Member:
        return replace(self, **changes)

    @classmethod
    def from_row(cls, r: tuple[Any, ...]) -> Member:
        # r follows MEMBER_COLUMNS.
        (
            mid,
            name,
            gender,
            relationship,
            birth_year,
            death_year,
            photo_url,
            spouse_name,
            spouse_id,
            parent_id,
            mother_name,
            location,
            created_at,
        ) = r
        return cls(
            id=str(mid),
            name=name,
            gender=Gender(gender),
            relationship=Relationship(relationship or Relationship.CHILD.value),
            birth_year=birth_year,
            death_year=death_year,
            photo_url=photo_url,
            spouse_name=spouse_name,
            spouse_id=str(spouse_id) if spouse_id else None,
            parent_id=str(parent_id) if parent_id else None,
            mother_name=mother_name,
            location=location,
            created_at=created_at,
        )

    def to_wire(self) -> dict[str, Any]:
        """Flat record as stored: ``{id, name, gender, relationship, birthYear?, ...}``."""

        out: dict[str, Any] = {}
        for col in MEMBER_COLUMNS:
            value = _column_value(getattr(self, col))
            if isinstance(value, datetime):
                value = value.isoformat()
            out[_WIRE_NAMES.get(col, col)] = value
        return out

    def to_node(self) -> dict[str, Any]:
        """Per-node payload of the nested ``GET /family`` tree (children added by the caller)."""

        return {
            "id": self.id,
            "name": self.name,
            "gender": self.gender.value,
            "relationship": self.relationship.value,
            "birthYear": self.birth_year,
            "deathYear": self.death_year,
            "photoUrl": self.photo_url,
            "spouseName": self.spouse_name,
            "spouseId": self.spouse_id,
            "metadata": {
                "motherName": self.mother_name,
                "location": self.location,
            },
        }


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def placeholder_root() -> Member:
    """Stand-in root served when the store is empty or unreadable."""
    return Member(
        id=ROOT_SENTINEL,
        name="Family Root",
        gender=Gender.MALE,
        relationship=Relationship.ROOT,
    )
