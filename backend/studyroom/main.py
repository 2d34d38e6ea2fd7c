# backend/studyroom/main.py
"""
FastAPI application for the Study Room scheduling API.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .core.exceptions import DomainException
from .database import init_db
from .routes.v1 import health as health_v1, prometheus as prometheus_v1, sessions as sessions_v1

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables on startup; there is nothing to release on shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(
        f"Scheduling timezone: {settings.scheduling_timezone}, "
        f"tutor lock {'enabled' if settings.scheduling_lock_enabled else 'disabled'}"
    )
    init_db()
    yield
    logger.info(f"{BRAND_NAME} API shutting down...")


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        lifespan=app_lifespan,
    )

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        # Domain payloads are returned flat: {"code", "error", "details"?}
        if isinstance(exc.detail, dict) and "code" in exc.detail:
            content = exc.detail
        else:
            content = {"code": "HTTP_ERROR", "error": str(exc.detail)}
        return JSONResponse(
            status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = jsonable_encoder(exc.errors())
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Request validation failed")
        return JSONResponse(
            status_code=422,
            content={
                "code": "INVALID_REQUEST",
                "error": f"{field}: {message}" if field else message,
                "details": errors,
            },
        )

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(health_v1.router)
    api_v1.include_router(sessions_v1.router, prefix="/sessions")
    app.include_router(api_v1)
    app.include_router(prometheus_v1.router, prefix="/metrics")
    return app


app = create_app()
