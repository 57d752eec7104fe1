"""FastAPI application factory."""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import AttemptError
from .metrics import instrument_app, router as metrics_router
from .routers.attempts import router as attempts_router
from .routers.health import router as health_router
from .schemas import AttemptErrorResponse
from .settings import get_settings


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def attempt_error_handler(request: Request, exc: AttemptError) -> JSONResponse:
    body = AttemptErrorResponse(error=str(exc), step=exc.step, attempt_id=exc.attempt_id)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title=settings.app_name, version=settings.version)
    instrument_app(app)
    app.add_exception_handler(AttemptError, attempt_error_handler)
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(attempts_router)
    return app


app = create_app()
