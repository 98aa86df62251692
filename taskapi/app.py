# taskapi/app.py

"""
FastAPI application factory.

``create_app`` wires settings, store, cache and service together. Tests pass
their own store and cache; ``main.py`` builds them from the environment.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from taskapi.cache import TaskCache, build_cache
from taskapi.config import Settings, settings as default_settings
from taskapi.handlers import PAYLOAD_TOO_LARGE, error_response, register_exception_handlers
from taskapi.routes import router as tasks_router
from taskapi.service import TaskService
from taskapi.store import TaskStore, build_store

logger = structlog.get_logger(__name__)

SERVICE_NAME = "Task Manager API"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than ``max_bytes`` with 413.

    A declared ``Content-Length`` is checked up front. Bodies without one
    (chunked uploads) are counted as they are read, and reading stops with
    a 413 as soon as the limit is passed.
    """

    def __init__(self, app: ASGIApp, max_bytes: int):
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope["headers"])
        declared = headers.get(b"content-length")
        if declared is not None:
            if not declared.strip().isdigit():
                response = error_response(400, "Invalid Content-Length header")
                await response(scope, receive, send)
                return
            if int(declared) > self.max_bytes:
                response = error_response(413, *PAYLOAD_TOO_LARGE)
                await response(scope, receive, send)
                return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    logger.warning("Request body over limit", path=scope.get("path"), limit=self.max_bytes)
                    raise HTTPException(status_code=413)
            return message

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracking_send)
        except HTTPException as exc:
            if exc.status_code != 413 or response_started:
                raise
            response = error_response(413, *PAYLOAD_TOO_LARGE)
            await response(scope, receive, send)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[TaskStore] = None,
    cache: Optional[TaskCache] = None,
) -> FastAPI:
    settings = settings or default_settings
    store = store if store is not None else build_store(settings)
    cache = cache if cache is not None else build_cache(settings)
    service = TaskService(store, cache, cache_ttl=settings.cache_ttl_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Task Manager API starting up",
            version=settings.api_version,
            environment=settings.environment.value,
            store=type(store).__name__,
            cache=type(cache).__name__,
        )
        if not await cache.ping():
            logger.warning("Cache backend unreachable, listings will be served from the store")

        yield

        logger.info("Task Manager API shutting down")
        await cache.close()
        await store.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if not settings.is_production() else None,
        redoc_url="/redoc" if not settings.is_production() else None,
    )
    app.state.settings = settings
    app.state.task_service = service

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        return response

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else None
        logger.info("Request", method=request.method, path=request.url.path, client=client)
        return await call_next(request)

    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_body_bytes)
    app.add_middleware(CORSMiddleware, **settings.get_cors_config())

    register_exception_handlers(app, include_stack=not settings.is_production())
    app.include_router(tasks_router)

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health():
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
        }

    return app
