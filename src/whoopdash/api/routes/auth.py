"""Login, callback and logout routes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse, RedirectResponse

from whoopdash.api.dependencies import Services, get_services, get_session_id
from whoopdash.api.errors import LOGIN_FAILED_PATH
from whoopdash.errors import AuthorizationError, TransportError

logger = logging.getLogger(__name__)

router = APIRouter()

LANDING_PATH = "/welcome"


@router.get("/auth/login")
async def login(services: Services = Depends(get_services)):
    """Start the OAuth flow: redirect the browser to WHOOP's consent page."""
    url = services.coordinator.begin_login()
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/auth/callback")
async def callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    services: Services = Depends(get_services),
    session_id: Optional[str] = Depends(get_session_id),
):
    """
    Handle the provider redirect.

    Success sets the session cookie and lands on /welcome. Any failure
    (provider-reported error, bad state, rejected code, unreachable token
    endpoint) lands on the failure page with no session created.
    """
    if error:
        logger.warning("Provider reported authorization error: %s", error)
        if state:
            services.coordinator.abandon_login(state)
        return RedirectResponse(LOGIN_FAILED_PATH, status_code=status.HTTP_302_FOUND)

    try:
        session = await services.coordinator.handle_callback(
            state, code, previous_session_id=session_id
        )
    except (AuthorizationError, TransportError) as exc:
        logger.warning("Login callback failed: %s", exc)
        return RedirectResponse(LOGIN_FAILED_PATH, status_code=status.HTTP_302_FOUND)

    settings = services.settings
    response = RedirectResponse(LANDING_PATH, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.session_id,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
        path="/",
    )
    return response


@router.get("/auth/failed", response_class=HTMLResponse)
def login_failed():
    return HTMLResponse(
        """
        <h2>Login with WHOOP failed</h2>
        <p>The authorization could not be completed. Please try again.</p>
        <a href="/auth/login">Login with WHOOP</a>
        """,
        status_code=status.HTTP_401_UNAUTHORIZED,
    )


@router.get("/logout")
async def logout(
    services: Services = Depends(get_services),
    session_id: Optional[str] = Depends(get_session_id),
):
    if session_id:
        await services.sessions.remove(session_id)
    response = RedirectResponse("/", status_code=status.HTTP_302_FOUND)
    response.delete_cookie(key=services.settings.session_cookie_name, path="/")
    return response
