"""
FastAPI application entry point for the coffee rating API.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request

from coffeerate.config import get_settings
from coffeerate.errors import register_error_handlers
from coffeerate.routes import router

REQUEST_ID_HEADER = "X-Request-Id"


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Coffee Ratings API", version="0.1.0")
    register_error_handlers(app)

    @app.middleware("http")
    async def attach_request_id(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
