from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from habitlog.db import dispose_engine
from habitlog.db_init import init_db
from habitlog.errors import HabitlogError
from habitlog.routes import chat, habits, mood, notifications, progress

logger = logging.getLogger("habitlog")


def create_app() -> FastAPI:
    logging.basicConfig(
        level=os.getenv("BACKEND_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    app = FastAPI(title="Habitlog API", version="0.1.0")

    app.include_router(habits.router)
    app.include_router(mood.router)
    app.include_router(progress.router)
    app.include_router(chat.router)
    app.include_router(notifications.router)

    @app.on_event("startup")
    async def _startup():
        await init_db()

    @app.on_event("shutdown")
    async def _shutdown():
        await dispose_engine()

    @app.exception_handler(HabitlogError)
    async def _domain_error_handler(request: Request, exc: HabitlogError):
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


app = create_app()
