"""
Main entrypoint: serves the FastAPI app under uvicorn.

Usage:
    python -m whoopdash                       # listens on 0.0.0.0:3000
    HOST=127.0.0.1 PORT=8000 python -m whoopdash
    uvicorn --factory whoopdash.api.main:create_app --port 3000
"""
import logging
import os

import uvicorn

from whoopdash.config import get_settings


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    logger = logging.getLogger(__name__)

    if not settings.client_id or not settings.client_secret:
        logger.warning("CLIENT_ID / CLIENT_SECRET not set; WHOOP login will be rejected.")

    from whoopdash.api.main import create_app

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "3000"))
    logger.info("Server running at http://%s:%d", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
