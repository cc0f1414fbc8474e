"""Per-app service container and FastAPI dependencies."""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx
from fastapi import Request

from whoopdash.auth.coordinator import AuthorizationCoordinator, PendingRequestStore
from whoopdash.auth.lifecycle import TokenLifecycleManager
from whoopdash.auth.sessions import SessionStore
from whoopdash.config import ProviderConfig, Settings
from whoopdash.whoop.oauth import WhoopOAuth
from whoopdash.whoop.proxy import ResourceProxy


@dataclass
class Services:
    settings: Settings
    sessions: SessionStore
    coordinator: AuthorizationCoordinator
    lifecycle: TokenLifecycleManager
    proxy: ResourceProxy


def build_services(
    settings: Settings,
    http: httpx.AsyncClient,
    sessions: SessionStore,
) -> Services:
    """Wire the auth core around one HTTP client and one session store."""
    provider = ProviderConfig.from_settings(settings)
    oauth = WhoopOAuth(provider, http)
    coordinator = AuthorizationCoordinator(
        provider,
        oauth,
        sessions,
        pending=PendingRequestStore(ttl=timedelta(seconds=settings.state_ttl_seconds)),
    )
    lifecycle = TokenLifecycleManager(
        provider,
        oauth,
        sessions,
        safety_margin=timedelta(seconds=settings.token_safety_margin_seconds),
    )
    proxy = ResourceProxy(
        provider, http, lifecycle, sessions, enforce_scopes=settings.enforce_scopes
    )
    return Services(
        settings=settings,
        sessions=sessions,
        coordinator=coordinator,
        lifecycle=lifecycle,
        proxy=proxy,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the services built at startup."""
    return request.app.state.services


def get_session_id(request: Request) -> Optional[str]:
    """Session id from the session cookie, if the browser sent one."""
    settings: Settings = request.app.state.services.settings
    return request.cookies.get(settings.session_cookie_name) or None
