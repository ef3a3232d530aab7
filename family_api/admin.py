"""CLI admin tool for the family tree database.

Usage:
    python -m family_api.admin init-db
    python -m family_api.admin seed-root --name="Sidafa Sano" --birth-year=1916 --photo-url=/sidafa-sano.jpeg
    python -m family_api.admin check
"""

from __future__ import annotations

import argparse
from functools import partial

import psycopg

from .assemble import assemble_tree
from .config import load_settings
from .db import db_conn, ensure_schema
from .errors import FamilyTreeError
from .models import Gender, Member, Relationship
from .mutations import Changeset, Snapshot, _clean_gender, _clean_name, _clean_year, new_member_id
from .store import PgMemberStore


def _connect(args: argparse.Namespace):
    return partial(db_conn, args.database_url or load_settings().database_url)


def cmd_init_db(args: argparse.Namespace) -> None:
    with _connect(args)() as conn:
        ensure_schema(conn)
    print("Schema is up to date.")


def cmd_seed_root(args: argparse.Namespace) -> None:
    root = Member(
        id=args.id or new_member_id(),
        name=_clean_name(args.name),
        gender=_clean_gender(args.gender),
        relationship=Relationship.ROOT,
        birth_year=_clean_year(args.birth_year, "birthYear"),
        photo_url=args.photo_url or None,
    )
    existing: list[Member] = []

    def build(snapshot: Snapshot) -> Changeset:
        cs = Changeset()
        existing.extend(m for m in snapshot.values() if m.relationship is Relationship.ROOT)
        if not existing:
            cs.insert(root)
        return cs

    with _connect(args)() as conn:
        ensure_schema(conn)
    PgMemberStore(_connect(args)).mutate(build)
    if existing:
        print(f"Root member already exists: {existing[0].name} ({existing[0].id})")
    else:
        print(f"Root member created: {root.name} ({root.id})")


def cmd_check(args: argparse.Namespace) -> int:
    store = PgMemberStore(_connect(args))
    try:
        members = store.list_members()
    except (psycopg.Error, RuntimeError) as e:
        print(f"Database connection failed: {e}")
        return 1
    print(f"Database connected: {len(members)} member(s).")
    if not members:
        return 0
    try:
        tree = assemble_tree(members)
    except FamilyTreeError as e:
        print(f"Tree cannot be assembled: {e}")
        return 1
    print(f"Root: {tree.root.name} ({tree.root_id}); {len(tree)} reachable, {len(tree.marriages)} marriage(s).")
    for orphan in tree.orphans:
        print(f"  orphan {orphan.member_id}: {orphan.reason} ({orphan.reference or '-'})")
    return 0 if not tree.orphans else 2


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Family tree admin CLI")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("init-db", help="Create the member table if missing")

    p = sub.add_parser("seed-root", help="Create the root member unless one exists")
    p.add_argument("--name", required=True)
    p.add_argument("--gender", default=Gender.MALE.value, choices=[g.value for g in Gender])
    p.add_argument("--birth-year", default=None)
    p.add_argument("--photo-url", default=None)
    p.add_argument("--id", default=None, help="Explicit member id (default: random)")

    sub.add_parser("check", help="Report connectivity, member count and orphaned records")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command == "init-db":
            cmd_init_db(args)
        elif args.command == "seed-root":
            cmd_seed_root(args)
        else:
            return cmd_check(args)
    except FamilyTreeError as e:
        raise SystemExit(f"Error: {e}") from e
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
