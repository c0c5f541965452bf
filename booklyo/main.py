"""FastAPI application for the Booklyo booking platform backend."""
from __future__ import annotations

import logging
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .app.routes.billing import router as billing_router
from .app.routes.bookings import router as bookings_router
from .app_context import AppContext, build_app_context
from .config import Settings, load_settings
from .middleware import SecurityHeadersMiddleware

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

logger = logging.getLogger("booklyo")


def create_app(settings: Optional[Settings] = None, context: Optional[AppContext] = None) -> FastAPI:
    """Build the API around an explicitly constructed :class:`AppContext`."""

    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    app = FastAPI(title="Booklyo API")
    app.state.context = context or build_app_context(settings)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(billing_router)
    app.include_router(bookings_router)

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok"}

    logger.info("Booklyo API configured for %s", settings.frontend_base_url)
    return app


def get_app() -> FastAPI:
    """Factory for ``uvicorn --factory booklyo.main:get_app``."""

    load_dotenv()
    return create_app()
