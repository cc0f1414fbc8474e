"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from whoopdash.api.dependencies import build_services
from whoopdash.api.errors import register_exception_handlers
from whoopdash.api.routes import auth, pages, resources, webhook
from whoopdash.auth.sessions import InMemorySessionStore, SessionStore, SqlSessionStore
from whoopdash.config import Settings, get_settings
from whoopdash.db.engine import build_engine

logger = logging.getLogger(__name__)


def _build_session_store(settings: Settings) -> SessionStore:
    if settings.database_url:
        return SqlSessionStore(build_engine(settings.database_url))
    return InMemorySessionStore()


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build and return the FastAPI app.

    Args:
        settings: Defaults to get_settings() (environment / .env).
        transport: Optional httpx transport for all outbound calls; tests
            pass an httpx.MockTransport here.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http = httpx.AsyncClient(timeout=settings.request_timeout_seconds, transport=transport)
        sessions = _build_session_store(settings)
        app.state.services = build_services(settings, http, sessions)
        logger.info(
            "Session store: %s, provider: %s",
            type(sessions).__name__, settings.whoop_api_hostname,
        )
        try:
            yield
        finally:
            await http.aclose()
            await sessions.close()

    app = FastAPI(
        title="WHOOP Dashboard API",
        description="WHOOP OAuth login and recovery/sleep/cycle data proxy",
        version="0.1.0",
        lifespan=lifespan,
    )

    register_exception_handlers(app)
    app.include_router(pages.router, tags=["pages"])
    app.include_router(auth.router, tags=["auth"])
    app.include_router(resources.router, prefix="/resource", tags=["resources"])
    app.include_router(webhook.router, tags=["webhook"])

    return app
