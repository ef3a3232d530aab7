from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import psycopg

SCHEMA_SQL = Path(__file__).resolve().parent.parent / "sql" / "schema.sql"


def get_database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set")
    return url


@contextmanager
def db_conn(database_url: str | None = None) -> Iterator[psycopg.Connection]:
    """Yield a connection to the family database.

    Commits when the block exits cleanly (psycopg's connection context
    manager), rolls back when it raises.
    """
    with psycopg.connect(database_url or get_database_url()) as conn:
        yield conn


def ensure_schema(conn: psycopg.Connection) -> None:
    """Create the ``member`` table if it is missing (idempotent)."""
    conn.execute(SCHEMA_SQL.read_text(encoding="utf-8"))
