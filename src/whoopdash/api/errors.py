"""Map the auth/proxy error taxonomy onto HTTP responses."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from whoopdash.errors import (
    AuthorizationError,
    MalformedResponseError,
    ScopeError,
    TokenRefreshError,
    TransportError,
    UpstreamApiError,
)

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
LOGIN_FAILED_PATH = "/auth/failed"


def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for every error class the core can raise."""

    @app.exception_handler(TokenRefreshError)
    async def token_refresh_error_handler(
        request: Request, exc: TokenRefreshError
    ) -> RedirectResponse:
        """No usable token: send the browser through login again."""
        logger.info("Re-authentication required at %s (%s)", request.url.path, exc.reason.value)
        return RedirectResponse(LOGIN_PATH, status_code=status.HTTP_302_FOUND)

    @app.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> RedirectResponse:
        logger.warning("Login failed at %s: %s", request.url.path, exc.reason.value)
        return RedirectResponse(LOGIN_FAILED_PATH, status_code=status.HTTP_302_FOUND)

    @app.exception_handler(ScopeError)
    async def scope_error_handler(request: Request, exc: ScopeError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": str(exc), "missing_scopes": list(exc.missing)},
        )

    @app.exception_handler(UpstreamApiError)
    async def upstream_api_error_handler(
        request: Request, exc: UpstreamApiError
    ) -> JSONResponse:
        """Provider 4xx/5xx are passed through with their status and body."""
        logger.warning("Upstream error at %s: %s", request.url.path, exc.status_code)
        status_code = exc.status_code if exc.status_code >= 400 else status.HTTP_502_BAD_GATEWAY
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": "Upstream API error",
                "status_code": exc.status_code,
                "provider_body": exc.provider_body,
            },
        )

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
        logger.error("Upstream unreachable at %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Upstream service unavailable"},
        )

    @app.exception_handler(MalformedResponseError)
    async def malformed_response_handler(
        request: Request, exc: MalformedResponseError
    ) -> JSONResponse:
        logger.error("Malformed upstream response at %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"detail": "Upstream returned an unexpected response"},
        )
