"""
Access-token freshness with single-flight refresh per session.

Refresh tokens rotate on use, so two concurrent refreshes for one session
would leave one of them holding a revoked credential. Every caller that
finds a stale token awaits the same in-flight refresh task instead.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict

import httpx

from whoopdash.auth.sessions import SessionStore
from whoopdash.config import ProviderConfig
from whoopdash.errors import OAuthGrantError, RefreshFailure, TokenRefreshError
from whoopdash.models.session import TokenBundle, utcnow
from whoopdash.whoop.oauth import WhoopOAuth

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(seconds=30)


class TokenLifecycleManager:
    def __init__(
        self,
        provider: ProviderConfig,
        oauth: WhoopOAuth,
        sessions: SessionStore,
        safety_margin: timedelta = DEFAULT_SAFETY_MARGIN,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._provider = provider
        self._oauth = oauth
        self._sessions = sessions
        self._margin = safety_margin
        self._clock = clock
        self._inflight: Dict[str, "asyncio.Task[str]"] = {}

    async def ensure_fresh(self, session_id: str) -> str:
        """
        Return an access token valid for at least the safety margin.

        Raises:
            TokenRefreshError: NO_SESSION, REFRESH_REJECTED or TRANSPORT.
                All of them mean the user has to log in again.
        """
        session = await self._sessions.get(session_id)
        if session is None or session.token_bundle is None:
            raise TokenRefreshError(RefreshFailure.NO_SESSION)

        bundle = session.token_bundle
        if not bundle.is_stale(self._clock(), self._margin):
            return bundle.access_token

        return await self._join_refresh(session_id)

    async def _join_refresh(self, session_id: str) -> str:
        # No await between lookup and insert, so only one task per session.
        task = self._inflight.get(session_id)
        if task is None:
            task = asyncio.ensure_future(self._refresh(session_id))
            self._inflight[session_id] = task
            task.add_done_callback(lambda t: self._forget(session_id, t))
        # Shielded: an aborted client request must not cancel a refresh other
        # callers are waiting on.
        return await asyncio.shield(task)

    def _forget(self, session_id: str, task: "asyncio.Task[str]") -> None:
        if self._inflight.get(session_id) is task:
            del self._inflight[session_id]

    async def _refresh(self, session_id: str) -> str:
        session = await self._sessions.get(session_id)
        if session is None or session.token_bundle is None:
            raise TokenRefreshError(RefreshFailure.NO_SESSION)

        bundle = session.token_bundle
        # A refresh that finished just before this one started already did the work.
        if not bundle.is_stale(self._clock(), self._margin):
            return bundle.access_token
        if not bundle.can_refresh:
            raise TokenRefreshError(RefreshFailure.REFRESH_REJECTED, "no refresh token")

        logger.info("Refreshing access token (expired_at=%s)", bundle.expires_at.isoformat())
        try:
            payload = await self._oauth.refresh(bundle.refresh_token)
        except OAuthGrantError as exc:
            logger.warning("Token refresh rejected: %s", exc.status_code)
            raise TokenRefreshError(RefreshFailure.REFRESH_REJECTED, str(exc.status_code)) from exc
        except httpx.HTTPError as exc:
            logger.error("Token refresh failed: %s", type(exc).__name__)
            raise TokenRefreshError(RefreshFailure.TRANSPORT, type(exc).__name__) from exc

        try:
            fresh = TokenBundle.from_token_response(
                payload,
                issued_at=self._clock(),
                requested_scopes=bundle.scopes,
                allowed_scopes=self._provider.scopes,
                previous_refresh_token=bundle.refresh_token,
            )
        except ValueError as exc:
            raise TokenRefreshError(
                RefreshFailure.REFRESH_REJECTED, "malformed token response"
            ) from exc

        updated = await self._sessions.replace_tokens(session_id, fresh)
        if updated is None:
            # Logged out mid-refresh; don't resurrect the session.
            raise TokenRefreshError(RefreshFailure.NO_SESSION)

        logger.info("Token refreshed, new expires_at=%s", fresh.expires_at.isoformat())
        return fresh.access_token
