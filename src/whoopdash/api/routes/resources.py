"""Proxied WHOOP resource routes."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from whoopdash.api.dependencies import Services, get_services, get_session_id
from whoopdash.errors import RefreshFailure, TokenRefreshError
from whoopdash.whoop.endpoints import get_endpoint

router = APIRouter()


@router.get("/{name}")
async def get_resource(
    name: str,
    limit: Optional[int] = Query(None, ge=1, le=25),
    services: Services = Depends(get_services),
    session_id: Optional[str] = Depends(get_session_id),
):
    """
    Fetch one resource for the logged-in user and return its chart-ready form.

    Without a session the browser is sent to /auth/login before any upstream
    call is made. Upstream errors are mapped in whoopdash.api.errors.
    """
    try:
        endpoint = get_endpoint(name)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown resource: {name}")

    if not session_id:
        raise TokenRefreshError(RefreshFailure.NO_SESSION)

    params = {"limit": limit} if limit is not None and endpoint.collection else None
    data = await services.proxy.fetch_transformed(session_id, endpoint, params)
    return {"resource": endpoint.name, "data": data}
