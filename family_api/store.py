"""Member Store: the only owner of canonical member records.

``PgMemberStore`` is the Postgres-backed store used by the service;
``MemoryMemberStore`` keeps records in process (local runs and tests).
Both read a snapshot, let a pure mutation build a changeset from it, and
apply that changeset atomically.
"""

from __future__ import annotations

import logging
import threading
from contextlib import AbstractContextManager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Protocol

import psycopg

from .db import db_conn
from .models import MEMBER_COLUMNS, Member, _column_value
from .mutations import Changeset, Delete, Insert, Snapshot, Update

log = logging.getLogger(__name__)

Build = Callable[[Snapshot], Changeset]

_SELECT_MEMBERS = f"""
SELECT {", ".join(MEMBER_COLUMNS)}
FROM member
ORDER BY created_at, id
""".strip()

_INSERT_COLUMNS = tuple(c for c in MEMBER_COLUMNS if c != "created_at")


class MemberStore(Protocol):
    def list_members(self) -> list[Member]: ...

    def get(self, member_id: str) -> Member | None: ...

    def count(self) -> int: ...

    def mutate(self, build: Build) -> Changeset: ...


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------


def _fetch_members(conn: psycopg.Connection, *, for_update: bool = False) -> list[Member]:
    query = _SELECT_MEMBERS + (" FOR UPDATE" if for_update else "")
    return [Member.from_row(tuple(r)) for r in conn.execute(query).fetchall()]


def _apply_changeset(conn: psycopg.Connection, cs: Changeset) -> None:
    for op in cs.ops:
        if isinstance(op, Insert):
            values = tuple(_column_value(getattr(op.member, c)) for c in _INSERT_COLUMNS)
            conn.execute(
                f"INSERT INTO member ({', '.join(_INSERT_COLUMNS)}) "
                f"VALUES ({', '.join(['%s'] * len(_INSERT_COLUMNS))})",
                values,
            )
        elif isinstance(op, Update):
            fields = op.as_dict()
            bad = set(fields) - set(_INSERT_COLUMNS)
            if bad:
                raise ValueError(f"not a member column: {', '.join(sorted(bad))}")
            assignments = ", ".join(f"{col} = %s" for col in fields)
            conn.execute(
                f"UPDATE member SET {assignments} WHERE id = %s",
                tuple(_column_value(v) for v in fields.values()) + (op.member_id,),
            )
        elif isinstance(op, Delete):
            conn.execute("DELETE FROM member WHERE id = %s", (op.member_id,))


class PgMemberStore:
    def __init__(self, connect: Callable[[], AbstractContextManager[Any]] = db_conn) -> None:
        self._connect = connect

    def list_members(self) -> list[Member]:
        with self._connect() as conn:
            return _fetch_members(conn)

    def get(self, member_id: str) -> Member | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {', '.join(MEMBER_COLUMNS)} FROM member WHERE id = %s",
                (member_id,),
            ).fetchone()
        return Member.from_row(tuple(row)) if row else None

    def count(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM member").fetchone()[0])

    def mutate(self, build: Build) -> Changeset:
        with self._connect() as conn:
            with conn.transaction():
                snapshot = {m.id: m for m in _fetch_members(conn, for_update=True)}
                cs = build(snapshot)
                _apply_changeset(conn, cs)
        log.debug("Applied %d write(s)", len(cs.ops))
        return cs


# ---------------------------------------------------------------------------
# In-process
# ---------------------------------------------------------------------------


class MemoryMemberStore:
    def __init__(self, members: Iterable[Member] = ()) -> None:
        self._lock = threading.Lock()
        self._members: dict[str, Member] = {}
        self._clock = datetime.now(timezone.utc)
        for m in members:
            self._members[m.id] = self._stamp(m)

    def _stamp(self, m: Member) -> Member:
        if m.created_at is not None:
            return m
        # Strictly increasing timestamps keep insertion order stable.
        self._clock += timedelta(microseconds=1)
        return m.copy(created_at=self._clock)

    def list_members(self) -> list[Member]:
        with self._lock:
            return list(self._members.values())

    def get(self, member_id: str) -> Member | None:
        with self._lock:
            return self._members.get(member_id)

    def count(self) -> int:
        with self._lock:
            return len(self._members)

    def mutate(self, build: Build) -> Changeset:
        with self._lock:
            cs = build(dict(self._members))
            stamped = Changeset(
                [Insert(self._stamp(op.member)) if isinstance(op, Insert) else op for op in cs.ops]
            )
            self._members = stamped.apply_to(self._members)
        return cs
