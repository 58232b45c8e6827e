
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sessionguard.core.config import settings
from sessionguard.core.exceptions import SessionGuardException
from sessionguard.core.logging import setup_logging
from sessionguard.db.session import init_db
from sessionguard.routers import auth, health
from sessionguard.services.retention import start_token_purge, stop_token_purge


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)
    settings.validate_runtime_security()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        init_db()
        await start_token_purge()
        try:
            yield
        finally:
            await stop_token_purge()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(health.router, prefix="/api", tags=["health"])

    @app.exception_handler(SessionGuardException)
    async def handle_sessionguard_exception(_: Request, exc: SessionGuardException) -> JSONResponse:
        headers = exc.headers if getattr(exc, "headers", None) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    return app


app = create_app()
