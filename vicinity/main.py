"""vicinity FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from vicinity.api import admin, contacts, health, location, safety, sos, ws
from vicinity.api import settings as settings_api
from vicinity.core.config import settings
from vicinity.db.session import SessionLocal
from vicinity.services.engine import build_engine

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine unless one was injected (tests), then run its scheduler."""
    owned = getattr(app.state, "engine", None) is None
    if owned:
        app.state.engine = build_engine(SessionLocal)
    engine = app.state.engine
    if settings.scheduler_enabled:
        engine.start()
    try:
        yield
    finally:
        engine.shutdown()
        if owned:
            app.state.engine = None


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(location.router)
app.include_router(sos.router)
app.include_router(safety.router)
app.include_router(contacts.router)
app.include_router(settings_api.router)
app.include_router(admin.router)
app.include_router(ws.router)
