from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from scootpie.api.v1.router import api_router
from scootpie.core.config import settings
from scootpie.core.logging import configure_logging
from scootpie.db.session import engine
from scootpie.middleware.request_context import RequestContextMiddleware

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Scootpie API", version="0.1.0")
app.add_middleware(RequestContextMiddleware)
cors_origins = {
    settings.base_dashboard_url.rstrip("/"),
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}
extra_origins = [
    origin.strip().rstrip("/")
    for origin in settings.cors_extra_origins.split(",")
    if origin.strip()
]
cors_origins.update(extra_origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.on_event("startup")
def startup() -> None:
    logger.info(
        "startup_complete env=%s web_search=%s gemini=%s tryon_storage=%s",
        settings.app_env,
        bool(settings.serpapi_api_key),
        bool(settings.gemini_api_key),
        bool(settings.supabase_url and settings.supabase_service_role_key),
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict:
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception:
        logger.warning("readyz_db_unreachable")

    return {
        "ready": db_ok,
        "db": db_ok,
        "web_search": bool(settings.serpapi_api_key),
        "gemini": bool(settings.gemini_api_key),
    }
