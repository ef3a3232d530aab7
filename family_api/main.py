from __future__ import annotations

import logging
from typing import Any

import psycopg
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .deps import get_settings, get_store
from .routes import chart as chart_routes
from .routes import family as family_routes
from .routes import media as media_routes
from .store import MemberStore

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)

app = FastAPI(title="Family Tree API", version="0.1.0")

if _settings.cors_origin:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[_settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    log.info("FRONTEND_URL not set in production; cross-origin requests are disabled")

app.include_router(family_routes.router)
app.include_router(chart_routes.router)
app.include_router(media_routes.router)


@app.get("/health")
def health(store: MemberStore = Depends(get_store)) -> Any:
    try:
        store.count()
    except (psycopg.Error, RuntimeError) as e:
        log.error("Health check failed: %s", e)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "database": "disconnected", "error": str(e)},
        )
    return {"status": "ok", "database": "connected"}


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=_settings.port)


if __name__ == "__main__":
    run()
