"""FastAPI dependency providers (overridden in tests via ``app.dependency_overrides``)."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache, partial

from .bio import BioGenerator
from .config import Settings, load_settings
from .db import db_conn
from .store import MemberStore, PgMemberStore


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_store() -> MemberStore:
    return PgMemberStore(partial(db_conn, get_settings().database_url))


@lru_cache(maxsize=1)
def get_bio() -> BioGenerator:
    settings = get_settings()
    return BioGenerator(settings.gemini_api_key, model=settings.gemini_model)


@lru_cache(maxsize=1)
def get_crop_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=2, thread_name_prefix="crop")
