# collabtrack/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from collabtrack.auth.auth_router import router as auth_router
from collabtrack.comment.comment_router import router as comment_router
from collabtrack.config import Settings, load_settings
from collabtrack.database import Database
from collabtrack.notification.notification_router import router as notification_router
from collabtrack.project.project_router import router as project_router
from collabtrack.realtime.hub import BroadcastHub
from collabtrack.realtime.socket_router import router as socket_router
from collabtrack.task.task_router import router as task_router
from collabtrack.upload.storage import AttachmentStorage
from collabtrack.upload.upload_router import router as upload_router
from collabtrack.user.user_router import router as user_router

logger = logging.getLogger("collabtrack")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("collabtrack").setLevel(level.upper())


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()
    configure_logging(settings.log_level)

    if database is None:
        database = Database(settings.database_url, echo=settings.sql_echo)
    storage = AttachmentStorage(settings.upload_dir, settings.max_file_size, settings.allowed_mime_types)

    # ---------------- LIFECYCLE ----------------
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.initialize()
        storage.ensure_root()
        logger.info("app_started", extra={"environment": settings.environment})
        try:
            yield
        finally:
            database.dispose()
            logger.info("app_stopped")

    app = FastAPI(title="CollabTrack API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    app.state.storage = storage
    app.state.hub = BroadcastHub()

    # ---------------- CORS ----------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---------------- ERRORS ----------------
    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"detail": "Validation error", "errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path, "method": request.method})
        return JSONResponse(status_code=500, content={"detail": "Server error"})

    # ---------------- ROUTERS ----------------
    for router in (
        auth_router,
        user_router,
        project_router,
        task_router,
        comment_router,
        notification_router,
        upload_router,
    ):
        app.include_router(router, prefix="/api")
    app.include_router(socket_router)

    app.mount("/uploads", StaticFiles(directory=str(storage.root), check_dir=False), name="uploads")

    # ---------------- HEALTH ----------------
    @app.get("/health")
    def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": settings.environment,
        }

    return app


def run() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "collabtrack.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    run()
