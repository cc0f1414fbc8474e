"""Shared test fixtures."""
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs

import httpx
import pytest

from whoopdash.auth.coordinator import AuthorizationCoordinator, PendingRequestStore
from whoopdash.auth.lifecycle import TokenLifecycleManager
from whoopdash.auth.sessions import InMemorySessionStore
from whoopdash.config import ProviderConfig, Settings
from whoopdash.models.session import TokenBundle
from whoopdash.whoop.oauth import WhoopOAuth
from whoopdash.whoop.proxy import ResourceProxy

WHOOP_HOST = "https://whoop.test"
TOKEN_PATH = "/oauth/oauth2/token"
API_PREFIX = "/developer/v1"
ALL_SCOPES = ("offline", "read:recovery", "read:sleep", "read:cycles", "read:body_measurement")
T0 = datetime(2025, 1, 15, 7, 0, tzinfo=timezone.utc)

RECOVERY_PAYLOAD = {
    "records": [
        {
            "cycle_id": 2,
            "created_at": "2025-01-15T06:10:00.000Z",
            "score_state": "SCORED",
            "score": {"recovery_score": 71, "resting_heart_rate": 52, "hrv_rmssd_milli": 61.2},
        },
        {
            "cycle_id": 1,
            "created_at": "2025-01-14T06:05:00.000Z",
            "score_state": "SCORED",
            "score": {"recovery_score": 44, "resting_heart_rate": 56, "hrv_rmssd_milli": 40.8},
        },
    ],
    "next_token": None,
}

SLEEP_PAYLOAD = {
    "records": [
        {
            "id": 10,
            "start": "2025-01-14T22:40:00.000Z",
            "end": "2025-01-15T06:00:00.000Z",
            "score_state": "SCORED",
            "score": {"sleep_performance_percentage": 88},
        },
        {
            "id": 11,
            "start": "2025-01-15T23:10:00.000Z",
            "score_state": "PENDING_SCORE",
        },
    ],
}

CYCLE_PAYLOAD = {
    "records": [
        {"id": 5, "start": "2025-01-15T06:00:00.000Z", "score_state": "SCORED", "score": {"strain": 12.4}},
    ],
}

BODY_PAYLOAD = {"height_meter": 1.8, "weight_kilogram": 75.5, "max_heart_rate": 192}


class FakeClock:
    """Callable clock the tests can move forward by hand."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeWhoop:
    """
    httpx.MockTransport handler standing in for the WHOOP token endpoint
    and developer API. Every request is recorded.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.token_status = 200
        self.token_body: Optional[Any] = None  # None: generate a fresh token
        self.token_exception: Optional[type] = None
        self.token_delay = 0.0
        self.issued = 0
        self.api_exception: Optional[type] = None
        self.api_responses: Dict[str, Tuple[int, Any]] = {
            "/recovery": (200, RECOVERY_PAYLOAD),
            "/activity/sleep": (200, SLEEP_PAYLOAD),
            "/cycle": (200, CYCLE_PAYLOAD),
            "/user/measurement/body": (200, BODY_PAYLOAD),
        }

    @property
    def token_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == TOKEN_PATH]

    @property
    def api_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith(API_PREFIX)]

    @staticmethod
    def form(request: httpx.Request) -> Dict[str, str]:
        return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == TOKEN_PATH:
            return await self._token(request)
        return self._api(request)

    async def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_delay:
            await asyncio.sleep(self.token_delay)
        if self.token_exception is not None:
            raise self.token_exception("token endpoint unreachable", request=request)
        if self.token_status != 200:
            return httpx.Response(self.token_status, text="invalid_grant")
        if self.token_body is not None:
            return httpx.Response(200, json=self.token_body)
        self.issued += 1
        return httpx.Response(200, json={
            "access_token": f"access-{self.issued}",
            "refresh_token": f"refresh-{self.issued}",
            "expires_in": 3600,
            "scope": " ".join(ALL_SCOPES),
            "token_type": "bearer",
        })

    def _api(self, request: httpx.Request) -> httpx.Response:
        if self.api_exception is not None:
            raise self.api_exception("upstream unreachable", request=request)
        path = request.url.path[len(API_PREFIX):]
        if path not in self.api_responses:
            return httpx.Response(404, text="not found")
        status, body = self.api_responses[path]
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, text=body)


def make_bundle(
    issued_at: datetime = T0,
    expires_in: int = 3600,
    scopes=ALL_SCOPES,
    access_token: str = "access-0",
    refresh_token: str = "refresh-0",
) -> TokenBundle:
    return TokenBundle(
        access_token=access_token,
        refresh_token=refresh_token,
        issued_at=issued_at,
        expires_at=issued_at + timedelta(seconds=expires_in),
        scopes=frozenset(scopes),
    )


@pytest.fixture(name="settings")
def settings_fixture() -> Settings:
    return Settings(
        _env_file=None,
        whoop_api_hostname=WHOOP_HOST,
        client_id="client-123",
        client_secret="shh",
        callback_url="http://testserver/auth/callback",
        scopes=" ".join(ALL_SCOPES),
    )


@pytest.fixture(name="provider")
def provider_fixture(settings) -> ProviderConfig:
    return ProviderConfig.from_settings(settings)


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock()


@pytest.fixture(name="fake_whoop")
def fake_whoop_fixture() -> FakeWhoop:
    return FakeWhoop()


@pytest.fixture(name="http")
def http_fixture(fake_whoop) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=fake_whoop.transport(), timeout=10.0)


@pytest.fixture(name="store")
def store_fixture() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture(name="oauth")
def oauth_fixture(provider, http) -> WhoopOAuth:
    return WhoopOAuth(provider, http)


@pytest.fixture(name="coordinator")
def coordinator_fixture(provider, oauth, store, clock) -> AuthorizationCoordinator:
    return AuthorizationCoordinator(
        provider, oauth, store, pending=PendingRequestStore(), clock=clock
    )


@pytest.fixture(name="lifecycle")
def lifecycle_fixture(provider, oauth, store, clock) -> TokenLifecycleManager:
    return TokenLifecycleManager(provider, oauth, store, clock=clock)


@pytest.fixture(name="proxy")
def proxy_fixture(provider, http, lifecycle, store) -> ResourceProxy:
    return ResourceProxy(provider, http, lifecycle, store)
