"""
Authorization Code grant: login redirect, callback validation, code exchange.

The state nonce is the CSRF defense. A pending request is consumed before
anything else happens at callback time, so a nonce can never be replayed,
and an unknown/expired nonce fails before any network call.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, Optional

import httpx

from whoopdash.auth.sessions import SessionStore
from whoopdash.config import ProviderConfig
from whoopdash.errors import (
    AuthorizationError,
    AuthorizationFailure,
    OAuthGrantError,
    ScopeError,
    TransportError,
    UnsupportedScopeError,
)
from whoopdash.models.session import AuthorizationRequest, Session, TokenBundle, utcnow
from whoopdash.whoop.oauth import WhoopOAuth

logger = logging.getLogger(__name__)

# Profile data is not fetched; requesting the scope anyway would leave a
# half-populated user record.
UNSUPPORTED_SCOPES = frozenset({"read:profile"})

DEFAULT_STATE_TTL = timedelta(minutes=10)


class PendingRequestStore:
    """In-memory pending logins keyed by state nonce, with a TTL."""

    def __init__(self, ttl: timedelta = DEFAULT_STATE_TTL):
        self.ttl = ttl
        self._pending: Dict[str, AuthorizationRequest] = {}

    def add(self, request: AuthorizationRequest) -> None:
        self._pending[request.state_nonce] = request

    def consume(self, nonce: str, now: datetime) -> Optional[AuthorizationRequest]:
        """Pop the request for `nonce`; None if unknown, used, or expired."""
        request = self._pending.pop(nonce, None)
        if request is None or request.is_expired(now, self.ttl):
            return None
        return request

    def purge_expired(self, now: datetime) -> int:
        expired = [n for n, r in self._pending.items() if r.is_expired(now, self.ttl)]
        for nonce in expired:
            del self._pending[nonce]
        return len(expired)

    def __contains__(self, nonce: str) -> bool:
        return nonce in self._pending

    def __len__(self) -> int:
        return len(self._pending)


class AuthorizationCoordinator:
    """
    Drives the login half of the OAuth flow.

    Usage:
        url = coordinator.begin_login()
        # ... browser round-trip to the provider ...
        session = await coordinator.handle_callback(state, code)
    """

    def __init__(
        self,
        provider: ProviderConfig,
        oauth: WhoopOAuth,
        sessions: SessionStore,
        pending: Optional[PendingRequestStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._provider = provider
        self._oauth = oauth
        self._sessions = sessions
        self._pending = pending or PendingRequestStore()
        self._clock = clock

    @property
    def pending(self) -> PendingRequestStore:
        return self._pending

    def begin_login(self, requested_scopes: Optional[Iterable[str]] = None) -> str:
        """
        Register a pending login and return the provider redirect URL.

        Args:
            requested_scopes: Scopes to ask for, in order. Defaults to every
                configured scope.

        Raises:
            UnsupportedScopeError: if a profile scope is requested.
            ScopeError: if a scope is outside the configured list.
        """
        scopes = tuple(requested_scopes) if requested_scopes is not None else self._provider.scopes

        unsupported = [s for s in scopes if s in UNSUPPORTED_SCOPES]
        if unsupported:
            raise UnsupportedScopeError(unsupported)
        unknown = [s for s in scopes if s not in self._provider.scopes]
        if unknown:
            raise ScopeError(unknown)
        if not scopes:
            raise ScopeError(self._provider.scopes)

        now = self._clock()
        self._pending.purge_expired(now)

        request = AuthorizationRequest(
            state_nonce=secrets.token_urlsafe(32),
            requested_scopes=scopes,
            created_at=now,
        )
        self._pending.add(request)
        logger.info("Login initiated (scopes=%s)", " ".join(scopes))
        return self._oauth.authorization_url(request.state_nonce, scopes)

    async def handle_callback(
        self,
        received_state: Optional[str],
        code: Optional[str],
        previous_session_id: Optional[str] = None,
    ) -> Session:
        """
        Validate the callback and exchange the code for a session.

        Args:
            received_state: `state` query parameter echoed by the provider.
            code: authorization code.
            previous_session_id: session id the browser already carried. It is
                never reused; the new session always gets a fresh id and the
                previous one is removed.

        Raises:
            AuthorizationError(INVALID_STATE): unknown, replayed or expired state.
            AuthorizationError(EXCHANGE_REJECTED): the provider refused the code
                or answered with an unusable token body.
            TransportError: the token endpoint could not be reached.
        """
        now = self._clock()
        request = self._pending.consume(received_state, now) if received_state else None
        if request is None:
            logger.warning("Callback with unknown or expired state")
            raise AuthorizationError(AuthorizationFailure.INVALID_STATE)

        if not code:
            raise AuthorizationError(
                AuthorizationFailure.EXCHANGE_REJECTED, "callback carried no code"
            )

        try:
            payload = await self._oauth.exchange_code(code)
        except OAuthGrantError as exc:
            raise AuthorizationError(AuthorizationFailure.EXCHANGE_REJECTED, exc.body) from exc
        except httpx.HTTPError as exc:
            logger.error("Token exchange failed: %s", type(exc).__name__)
            raise TransportError(exc) from exc

        try:
            bundle = TokenBundle.from_token_response(
                payload,
                issued_at=self._clock(),
                requested_scopes=request.requested_scopes,
                allowed_scopes=self._provider.scopes,
            )
        except ValueError as exc:
            raise AuthorizationError(
                AuthorizationFailure.EXCHANGE_REJECTED, "malformed token response"
            ) from exc

        session = await self._sessions.create(bundle)
        if previous_session_id and previous_session_id != session.session_id:
            await self._sessions.remove(previous_session_id)
        logger.info("Login complete, token expires_at=%s", bundle.expires_at.isoformat())
        return session

    def abandon_login(self, received_state: str) -> None:
        """Drop a pending login the provider reported as failed."""
        self._pending.consume(received_state, self._clock())
