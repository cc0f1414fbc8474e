"""
Error taxonomy for the login flow, token lifecycle and resource proxy.

Every error is scoped to a single request/session; none of them is fatal
to the process. Route handlers map them onto HTTP responses in
whoopdash.api.errors.
"""
from enum import Enum
from typing import Iterable, Optional


# ── Login ─────────────────────────────────────────────────────────────────────

class AuthorizationFailure(str, Enum):
    INVALID_STATE = "invalid_state"
    EXCHANGE_REJECTED = "exchange_rejected"


class AuthorizationError(RuntimeError):
    """Raised when a login callback cannot produce a session."""

    def __init__(self, reason: AuthorizationFailure, provider_message: Optional[str] = None):
        self.reason = reason
        self.provider_message = provider_message
        message = reason.value
        if provider_message:
            message = f"{message}: {provider_message}"
        super().__init__(message)


# ── Token refresh ─────────────────────────────────────────────────────────────

class RefreshFailure(str, Enum):
    NO_SESSION = "no_session"
    REFRESH_REJECTED = "refresh_rejected"
    TRANSPORT = "transport"


class TokenRefreshError(RuntimeError):
    """
    Raised when no usable access token can be produced for a session.

    Always means "log in again"; never a transient condition to retry.
    """

    def __init__(self, reason: RefreshFailure, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)


# ── Scopes ────────────────────────────────────────────────────────────────────

class ScopeError(RuntimeError):
    """Raised when a request needs scopes the session was not granted."""

    label = "missing"

    def __init__(self, missing: Iterable[str]):
        self.missing = tuple(missing)
        super().__init__(f"{self.label} scope(s): {', '.join(self.missing)}")


class UnsupportedScopeError(ScopeError):
    """Raised for scopes this service refuses to request at all (profile)."""

    label = "unsupported"


# ── Upstream API ──────────────────────────────────────────────────────────────

class ApiError(RuntimeError):
    """Base class for failures of an authenticated upstream call."""


class UpstreamApiError(ApiError):
    """The provider answered with a non-2xx status."""

    def __init__(self, status_code: int, provider_body: str):
        self.status_code = status_code
        self.provider_body = provider_body
        super().__init__(f"upstream returned {status_code}")


class TransportError(ApiError):
    """The request never got a response (timeout, DNS, connection reset)."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"transport failure: {type(cause).__name__}")


class MalformedResponseError(ApiError):
    """The provider answered 2xx with a body we cannot use."""


# ── Token endpoint ────────────────────────────────────────────────────────────

class OAuthGrantError(RuntimeError):
    """Raised by WhoopOAuth when the token endpoint rejects a grant."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"token endpoint returned {status_code}")
