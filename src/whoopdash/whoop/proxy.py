"""
Authenticated GET against one WHOOP resource.

fetch_resource() either returns the parsed JSON body or raises one of:
    ScopeError            session lacks the endpoint's scope (no network call)
    TokenRefreshError     from ensure_fresh, unchanged (no network call)
    UpstreamApiError      non-2xx answer, status + body preserved
    TransportError        timeout, DNS, connection or any other httpx failure
    MalformedResponseError undecodable body, or not the expected JSON shape

Nothing is retried here; whether to retry is the caller's decision.
"""
import logging
from typing import Any, Mapping, Optional

import httpx

from whoopdash.auth.lifecycle import TokenLifecycleManager
from whoopdash.auth.sessions import SessionStore
from whoopdash.config import ProviderConfig
from whoopdash.errors import (
    MalformedResponseError,
    RefreshFailure,
    ScopeError,
    TokenRefreshError,
    TransportError,
    UpstreamApiError,
)
from whoopdash.whoop.endpoints import ResourceEndpoint

logger = logging.getLogger(__name__)


class ResourceProxy:
    def __init__(
        self,
        provider: ProviderConfig,
        http: httpx.AsyncClient,
        lifecycle: TokenLifecycleManager,
        sessions: SessionStore,
        enforce_scopes: bool = True,
    ):
        self._provider = provider
        self._http = http
        self._lifecycle = lifecycle
        self._sessions = sessions
        self._enforce_scopes = enforce_scopes

    async def fetch_resource(
        self,
        session_id: str,
        endpoint: ResourceEndpoint,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        if self._enforce_scopes:
            await self._check_scope(session_id, endpoint)

        access_token = await self._lifecycle.ensure_fresh(session_id)

        url = f"{self._provider.api_base_url}{endpoint.path}"
        try:
            response = await self._http.get(
                url,
                params=dict(params) if params else None,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.DecodingError as exc:
            logger.error("GET %s returned an undecodable body", endpoint.path)
            raise MalformedResponseError(f"{endpoint.name}: body could not be decoded") from exc
        except httpx.HTTPError as exc:
            logger.error("GET %s failed: %s", endpoint.path, type(exc).__name__)
            raise TransportError(exc) from exc

        if not response.is_success:
            logger.warning("GET %s returned %s", endpoint.path, response.status_code)
            raise UpstreamApiError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{endpoint.name}: body is not JSON") from exc

        _check_shape(endpoint, payload)
        return payload

    async def fetch_transformed(
        self,
        session_id: str,
        endpoint: ResourceEndpoint,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """fetch_resource() followed by the endpoint's display transform."""
        payload = await self.fetch_resource(session_id, endpoint, params)
        return endpoint.transform(payload)

    async def _check_scope(self, session_id: str, endpoint: ResourceEndpoint) -> None:
        session = await self._sessions.get(session_id)
        if session is None or session.token_bundle is None:
            # Same error ensure_fresh would raise
            raise TokenRefreshError(RefreshFailure.NO_SESSION)
        if endpoint.required_scope not in session.token_bundle.scopes:
            raise ScopeError([endpoint.required_scope])


def _check_shape(endpoint: ResourceEndpoint, payload: Any) -> None:
    if not isinstance(payload, dict):
        raise MalformedResponseError(f"{endpoint.name}: expected a JSON object")
    if endpoint.collection and not isinstance(payload.get("records"), list):
        raise MalformedResponseError(f"{endpoint.name}: missing records list")
