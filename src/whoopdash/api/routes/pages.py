"""Minimal HTML pages: home and post-login landing."""
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import HTMLResponse, RedirectResponse

from whoopdash.api.dependencies import Services, get_services, get_session_id
from whoopdash.whoop.endpoints import ENDPOINTS

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
def home():
    return """
    <h2>WHOOP OAuth Example</h2>
    <a href="/auth/login">Login with WHOOP</a>
    """


@router.get("/welcome")
async def welcome(
    services: Services = Depends(get_services),
    session_id: Optional[str] = Depends(get_session_id),
):
    session = await services.sessions.get(session_id) if session_id else None
    if session is None or session.token_bundle is None:
        return RedirectResponse("/", status_code=status.HTTP_302_FOUND)

    bundle = session.token_bundle
    links = "\n".join(
        f'<li><a href="/resource/{name}">{name.replace("_", " ")}</a></li>'
        for name, endpoint in ENDPOINTS.items()
        if endpoint.required_scope in bundle.scopes
    )
    return HTMLResponse(f"""
    <h2>Welcome!</h2>
    <p>Access token valid until {bundle.expires_at.isoformat()}</p>
    <ul>
    {links}
    </ul>
    <a href="/logout">Logout</a>
    """)
