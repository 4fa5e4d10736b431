"""FastAPI application for the journal service.

The link, store and health reporter are built once per application by
:func:`create_app` and handed to request handlers through ``app.state``.
"""

from __future__ import annotations

import time
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import REGISTRY, Counter, Histogram

from services.common import configure_logging, get_logger

from .config import APP_NAME, JournalSettings
from .errors import JournalError
from .health import HealthReporter
from .routers import journals_router, probes_router
from .storage import BackendLink
from .store import JournalStore

logger = get_logger(__name__)

REQUEST_COUNTER = Counter(
    "journal_requests_total",
    "Total number of requests received by the journal service",
    ["method", "endpoint"],
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "journal_request_latency_seconds",
    "Request latency in seconds for the journal service",
    ["endpoint"],
    registry=REGISTRY,
)


def create_app(
    settings: Optional[JournalSettings] = None,
    link: Optional[BackendLink] = None,
) -> FastAPI:
    settings = settings or JournalSettings.from_env()
    link = link or BackendLink.from_settings(settings)

    app = FastAPI(title="Journal Service", version="1.0.0")
    app.state.settings = settings
    app.state.link = link
    app.state.store = JournalStore(link, ttl=settings.ttl_seconds)
    app.state.health = HealthReporter(link)

    @app.on_event("startup")
    async def _startup() -> None:
        if not await link.connect():
            # keep serving; /health and /ready report degraded until the link recovers
            logger.error("Failed to connect to Redis - starting in degraded mode")
        logger.info(
            "Journal app started", extra={"port": settings.port, "environment": settings.app_env}
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        logger.info("Shutting down journal app")
        await link.close()

    @app.middleware("http")
    async def record_metrics(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        if request.url.path != "/metrics":
            duration = time.perf_counter() - start_time
            # label by route template so owner/entry ids do not explode cardinality
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            REQUEST_COUNTER.labels(request.method, endpoint).inc()
            REQUEST_LATENCY.labels(endpoint).observe(duration)
        return response

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(
            "Invalid request body", extra={"url": str(request.url), "errors": exc.errors()}
        )
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(JournalError)
    async def _journal_error(request: Request, exc: JournalError) -> JSONResponse:
        logger.error(
            "Unhandled journal error",
            extra={"url": str(request.url), "method": request.method, "error": str(exc)},
        )
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error",
            exc_info=exc,
            extra={"url": str(request.url), "method": request.method, "error": str(exc)},
        )
        content = {"error": "Internal server error"}
        if settings.is_development:
            content["message"] = str(exc)
        return JSONResponse(status_code=500, content=content)

    app.include_router(probes_router)
    app.include_router(journals_router)
    return app


def main() -> None:
    import uvicorn

    settings = JournalSettings.from_env()
    configure_logging(
        settings.log_level,
        settings.log_format,
        bindings=settings.log_bindings or {"app": APP_NAME},
    )
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
