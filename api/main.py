from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from commands import router as commands_router
from core.config import Settings, load_settings
from core.container import build_container
from core.errors import CommitAbortedError, NotFoundError
from core.logging import setup_logging
from cors.middleware import PolicyCorsMiddleware
from files import router as files_router
from implants import router as implants_router
from store.database import Database

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    reload_cors_from_env: bool = True,
) -> FastAPI:
    """
    Build the application. Configuration errors raise here, before anything
    is served.
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level)
    container = build_container(
        settings,
        database=database,
        reload_cors_from_env=reload_cors_from_env,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("listening_post_started environment=%s", settings.environment.value)
        try:
            yield
        finally:
            # Nothing is durable; drop the in-memory collections.
            container.database.clear()
            logger.info("listening_post_stopped")

    app = FastAPI(
        title="Listening Post API",
        description="A simple API for a typical command & control server.",
        lifespan=lifespan,
    )
    app.state.container = container

    # Per-endpoint CORS; relaxed on purpose for the operator UI, not a security boundary.
    app.add_middleware(
        PolicyCorsMiddleware,
        resolver=container.cors_resolver,
        settings_source=container.cors_settings,
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(CommitAbortedError)
    async def commit_aborted_handler(_: Request, exc: CommitAbortedError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content={"detail": f"{exc} Retry with fresh data."},
        )

    app.include_router(implants_router.router, tags=["implants"])
    app.include_router(commands_router.router, tags=["commands"])
    app.include_router(files_router.router, tags=["files"])

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/")
    def root() -> dict:
        return {"message": "listening post api"}

    return app


app = create_app()
