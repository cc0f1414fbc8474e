"""Inbound webhook: logs whatever JSON the provider posts."""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def receive_webhook(request: Request):
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    logger.info("Webhook payload: %s", payload)
    return {"message": "Webhook received"}


@router.api_route("/webhook", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def webhook_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method Not Allowed"})
