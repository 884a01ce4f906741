"""FastAPI application factory and server entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..utils.logging import configure_logging
from .config import ApiSettings
from .deps.context import AppContext, init_context
from .deps.providers import get_settings
from .errors import register_error_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: ApiSettings = app.state.settings
    owned = getattr(app.state, "context", None) is None
    if owned:
        configure_logging(settings.log_level, settings.log_format)
        logger.info("Starting promptlab API on %s:%s", settings.host, settings.port)
        app.state.context = await init_context(settings)

    yield

    if owned:
        logger.info("Shutting down promptlab API")
        await app.state.context.close()
        app.state.context = None


def create_app(
    settings: Optional[ApiSettings] = None,
    context: Optional[AppContext] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    A prebuilt *context* is used as is and left open on shutdown; otherwise
    the lifespan creates one from *settings* and closes it.
    """
    if settings is None:
        settings = context.settings if context is not None else get_settings()

    app = FastAPI(
        title="promptlab API",
        description="Submit prompts to LLM providers, stream responses, retry and compare runs.",
        version=__version__,
        lifespan=_lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.context = context

    # CORS
    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    allow_creds = "*" not in origins
    if not allow_creds:
        logger.warning(
            "CORS origins contain '*'. Credentials will NOT be allowed. "
            "Set explicit origins (e.g. 'http://localhost:5173') for "
            "credentialed cross-origin requests."
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_creds,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    from .routers import all_routers

    for router in all_routers():
        app.include_router(router)

    return app


def run_server() -> None:
    """CLI entry point: ``promptlab-server`` / ``python -m promptlab.api.main``."""
    import uvicorn

    settings = get_settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run_server()
