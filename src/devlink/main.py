"""Main FastAPI application for Devlink - social graph API.

This module serves as the entry point for the Devlink application, the
follow/unfollow service behind a developer social network.

Application Architecture:
    - Presentation Layer: FastAPI routers and endpoints
    - Business Logic Layer: SocialGraphService with the graph invariants
    - Data Access Layer: UserDirectory with transactional scopes
    - Cross-cutting Concerns: Logging, error handling, dependency injection

Middleware Stack:
    1. CORS middleware for cross-origin request handling
    2. Request correlation middleware for tracking and structured logs

Environment Configuration:
    - API_DEBUG: Enable debug mode and verbose logging
    - SECURITY_API_KEY / SECURITY_IDENTITY_HEADER: Caller identity settings
    - GRAPH_* variables: Pagination limits and transaction timeout
    - STORAGE_* variables: User directory backend and seed file

Example Usage:
    Run the development server:
        uvicorn devlink.main:app --reload

    Or via the console script:
        devlink
"""

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.dependencies import get_service_container
from .core.error_handlers import register_error_handlers
from .core.logging import ContextLogger, setup_logging
from .core.settings import settings
from .routers import graph


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """FastAPI application lifespan context manager.

    Startup Sequence:
        1. Initialize structured logging system
        2. Record application start time for uptime tracking
        3. Initialize service container (user directory, graph service)
        4. Load the configured user seed file, if any

    Args:
        app: FastAPI application instance to manage.

    Yields:
        None: Control is yielded to the running application.
    """
    setup_logging()
    app.state.logger = ContextLogger(__name__)
    app.state.start_time = time.time()

    container = get_service_container()
    container.initialize()
    app.state.container = container

    seed_file = settings.storage.seed_file
    if seed_file and await container.user_directory.count() == 0:
        await container.user_directory.load_fixture(seed_file)

    app.state.logger.info(
        "Devlink application started successfully",
        extra={
            "environment": "development" if settings.debug else "production",
            "version": settings.version,
            "debug_mode": settings.debug,
            "api_prefix": settings.prefix,
            "directory_backend": container.user_directory.name,
            "startup_time": time.time() - app.state.start_time,
        },
    )

    yield

    total_uptime = time.time() - app.state.start_time
    app.state.logger.info(
        "Devlink application shutting down gracefully",
        extra={"total_uptime_seconds": round(total_uptime, 2)},
    )


app = FastAPI(
    title=settings.project_name,
    description="""
    Devlink is the social graph API of a developer network.

    Features:
    • Follow and unfollow developers with transactional consistency
    • Paginated followers and following lists
    • Follow status checks and follow suggestions

    Authentication:
    Requests are authenticated upstream; the gateway forwards the caller's
    user id in the X-User-ID header.
    """,
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=(
        f"{settings.prefix}/openapi.json" if settings.prefix else "/openapi.json"
    ),
    lifespan=lifespan,
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
    max_age=3600,
)


@app.middleware("http")
async def request_middleware(request: Request, call_next: Any) -> Any:
    """HTTP request correlation and logging middleware.

    Generates (or accepts a valid ``X-Request-ID``) correlation id for each
    request, logs request start and completion with duration, and echoes the
    id back in the ``X-Correlation-ID`` response header.
    """
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id: str
    request_id_source = "generated"
    if client_request_id:
        try:
            correlation_id = str(uuid.UUID(client_request_id))
            request_id_source = "client"
        except ValueError:
            correlation_id = str(uuid.uuid4())
            request_id_source = "regenerated"
    else:
        correlation_id = str(uuid.uuid4())
    request.state.correlation_id = correlation_id
    request.state.request_id_source = request_id_source

    logger = app.state.logger
    logger.set_correlation_id(correlation_id)

    start_time = time.time()

    logger.info(
        "HTTP request initiated",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query_params": str(request.query_params) if request.query_params else None,
            "client_ip": request.client.host if request.client else "unknown",
            "user_agent": request.headers.get("user-agent"),
            "request_id_source": request_id_source,
        },
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        "HTTP request completed",
        extra={
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
            "request_id_source": request_id_source,
        },
    )

    response.headers["X-Correlation-ID"] = correlation_id
    logger.set_correlation_id(None)

    return response


register_error_handlers(app)

app.include_router(graph.router, prefix=settings.prefix)


@app.get(
    "/",
    summary="API root information",
    description="Returns basic API information and navigation links",
    tags=["System"],
)
async def root() -> dict[str, Any]:
    """API root endpoint providing basic service information and navigation."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs",
        "redoc": "/redoc",
        "status": "operational",
        "api_prefix": settings.prefix,
        "features": ["social-graph"],
    }


@app.get(
    "/health",
    summary="Application health check",
    description="Returns health and process metrics for monitoring",
    tags=["System"],
)
async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint for monitoring and diagnostics.

    Returns:
        JSONResponse with status, uptime, memory, CPU, directory backend
        status and the request's correlation id. Status 503 when degraded.
    """
    import psutil

    process = psutil.Process()
    uptime_seconds = int(time.time() - app.state.start_time)

    hours = uptime_seconds // 3600
    minutes = (uptime_seconds % 3600) // 60
    uptime_human = f"{hours} hours, {minutes} minutes"

    directory = app.state.container.user_directory
    dependencies = {
        "user_directory": directory.name,
        "user_count": await directory.count(),
        "logging_system": "operational",
    }

    health_status = "healthy"
    if process.memory_info().rss > 1024 * 1024 * 1024:  # > 1GB RAM
        health_status = "degraded"

    correlation_id = getattr(request.state, "correlation_id", str(uuid.uuid4()))

    response_body = {
        "status": health_status,
        "version": settings.version,
        "environment": "development" if settings.debug else "production",
        "uptime_seconds": uptime_seconds,
        "uptime_human": uptime_human,
        "memory_mb": round(process.memory_info().rss / 1024 / 1024, 2),
        "cpu_percent": round(process.cpu_percent(), 2),
        "dependencies": dependencies,
        "timestamp": time.time(),
        "api_prefix": settings.prefix,
        "correlation_id": correlation_id,
    }

    status_code = (
        status.HTTP_200_OK
        if health_status == "healthy"
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )

    return JSONResponse(status_code=status_code, content=response_body)


def run() -> None:
    """Run the API with uvicorn using the configured host and port."""
    import uvicorn

    uvicorn.run(
        "devlink.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    run()
