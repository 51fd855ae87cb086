# backend/motoserve/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import APIRouter, FastAPI, Request, Response

from .core.config import settings
from .core.logging import setup_logging
from .core.request_context import reset_request_id, set_request_id
from .core.ulid_helper import generate_ulid
from .database import init_db
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import admin as admin_v1
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import cancellations as cancellations_v1
from .routes.v1 import workers as workers_v1

logger = logging.getLogger(__name__)

API_TITLE = "motoserve booking core"
API_VERSION = "1.0.0"
REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    if settings.create_tables_on_startup:
        init_db()
    logger.info(
        "Starting %s (%s), lock backend: %s",
        API_TITLE,
        settings.environment,
        "redis" if settings.redis_url else "in-process",
    )
    yield
    logger.info("Shutting down %s", API_TITLE)


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

register_error_handlers(app)


@app.middleware("http")
async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_ulid()
    token = set_request_id(request_id)
    try:
        response = await call_next(request)
    finally:
        reset_request_id(token)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(workers_v1.router, prefix="/workers")
api_v1.include_router(admin_v1.router, prefix="/admin")
api_v1.include_router(cancellations_v1.router, prefix="/cancellations")
app.include_router(api_v1)


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "healthy", "environment": settings.environment}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
    )
