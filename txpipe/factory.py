"""Application factory wrapping route handlers in the request pipeline."""

from collections.abc import Callable
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from prometheus_client import CollectorRegistry
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import Receive, Scope, Send

from txpipe.api import service_router
from txpipe.core.metrics import MetricEmitter
from txpipe.core.settings import Settings, get_settings
from txpipe.middleware import install_pipeline
from txpipe.rejections import MethodRejection, RouteRejected


def create_app(
    settings: Optional[Settings] = None,
    routes: Optional[APIRouter] = None,
    loglevel_for_route: Optional[Callable[[str], int]] = None,
    metric_emitter: Optional[MetricEmitter] = None,
) -> FastAPI:
    """
    Application factory with settings injection.

    Args:
        settings: Optional settings instance. If None, creates from environment.
        routes: Route handlers wrapped by the pipeline.
        loglevel_for_route: Optional per-path log level policy. Defaults to the
            policy built from ``settings.quiet_routes``.
        metric_emitter: Optional emitter. Defaults to one backed by a fresh
            registry so applications never share metric families.

    Returns:
        Configured FastAPI application instance.
    """

    if settings is None:
        settings = get_settings()

    if metric_emitter is None:
        metric_emitter = MetricEmitter(
            registry=CollectorRegistry(), enabled=settings.metrics_enabled
        )

    app = FastAPI(title=settings.service_name, version="1.0.0")

    # Store shared state for routes and dependencies
    app.state.settings = settings
    app.state.metric_emitter = metric_emitter

    # Configure middleware
    install_pipeline(app, settings, metric_emitter, loglevel_for_route)

    # Setup routes
    setup_routes(app, routes)

    # Turn routing failures into rejections
    setup_rejections(app)

    return app


def setup_routes(app: FastAPI, routes: Optional[APIRouter]) -> None:
    """Configure application routes."""
    app.include_router(service_router)
    if routes is not None:
        app.include_router(routes)


def setup_rejections(app: FastAPI) -> None:
    """Report unmatched paths and methods to the pipeline as rejections."""

    not_found = app.router.not_found

    async def reject_unmatched(scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await not_found(scope, receive, send)
            return
        raise RouteRejected()

    app.router.default = reject_unmatched

    @app.exception_handler(405)
    async def reject_method(request: Request, exc: StarletteHTTPException):
        allowed = (exc.headers or {}).get("Allow", "")
        raise RouteRejected(
            *(MethodRejection(method.strip()) for method in allowed.split(",") if method.strip())
        )
