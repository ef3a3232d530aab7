from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

_REPO_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_FRONTEND_URL = "http://localhost:3000"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_API_URL = "http://localhost:3001"


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    port: int
    # None disables cross-origin access entirely.
    cors_origin: str | None
    gemini_api_key: str | None
    gemini_model: str
    api_url: str
    log_level: str


def _cors_origin(env: dict[str, str]) -> str | None:
    frontend = (env.get("FRONTEND_URL") or "").strip()
    if frontend:
        return frontend
    if (env.get("NODE_ENV") or "").strip().lower() == "production":
        return None
    return DEFAULT_FRONTEND_URL


def load_settings(env: dict[str, str] | None = None, *, dotenv: bool = True) -> Settings:
    """Build settings from the environment (after loading ``.env`` at the repo root)."""

    if env is None:
        if dotenv:
            load_dotenv(_REPO_ROOT / ".env")
        env = dict(os.environ)

    try:
        port = int(env.get("PORT") or 3001)
    except ValueError:
        raise ValueError(f"PORT must be an integer, got {env.get('PORT')!r}") from None

    return Settings(
        database_url=env.get("DATABASE_URL") or None,
        port=port,
        cors_origin=_cors_origin(env),
        gemini_api_key=env.get("GEMINI_API_KEY") or env.get("API_KEY") or None,
        gemini_model=env.get("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        api_url=(env.get("FAMILY_API_URL") or DEFAULT_API_URL).rstrip("/"),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
