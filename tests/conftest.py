from __future__ import annotations

from typing import Any, Callable

import pytest

from family_api.models import Gender, Member, Relationship


def _make(
    member_id: str,
    name: str | None = None,
    *,
    parent: str | None = None,
    relationship: str = "child",
    gender: str = "male",
    spouse: str | None = None,
    birth: int | None = None,
    death: int | None = None,
    photo: str | None = None,
    **extra: Any,
) -> Member:
    return Member(
        id=member_id,
        name=name or member_id,
        gender=Gender(gender),
        relationship=Relationship(relationship),
        birth_year=birth,
        death_year=death,
        photo_url=photo,
        spouse_id=spouse,
        parent_id=parent,
        **extra,
    )


@pytest.fixture()
def make() -> Callable[..., Member]:
    return _make


@pytest.fixture()
def family() -> list[Member]:
    """Small tree, records in insertion order.

    r (root, married to s)
    ├── s   (spouse-tagged pseudo-child of r)
    ├── a   Amina, married to o
    │   ├── o  Omar (spouse-tagged)
    │   └── k  Khalil
    └── b   Samir
    """

    return [
        _make("r", "Sidafa Sano", relationship="root", spouse="s", birth=1916, photo="/sidafa.jpeg"),
        _make("s", "Mariama", parent="r", relationship="spouse", gender="female", spouse="r", birth=1920),
        _make("a", "Amina Sano", parent="r", gender="female", spouse="o", birth=1990, photo="data:image/jpeg;base64,AAA"),
        _make("o", "Omar", parent="a", relationship="spouse", spouse="a"),
        _make("k", "Khalil", parent="a", birth=2015),
        _make("b", "Samir", parent="r", birth=1950),
    ]


@pytest.fixture()
def snapshot(family: list[Member]) -> dict[str, Member]:
    return {m.id: m for m in family}
