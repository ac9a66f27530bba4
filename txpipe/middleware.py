"""Request instrumentation pipeline.

Every request passes through the same fixed sequence: transaction allocation,
request logging, reserved header removal, the wrapped handler, rejection
handling, entity buffering and finally response logging and metrics.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from txpipe.core.logging import LogEntry, emit_log_entry, fallback_logger, get_logger
from txpipe.core.metrics import MetricEmitter, format_marker, get_metric_emitter, http_token
from txpipe.core.settings import Settings, get_settings
from txpipe.core.transaction import (
    EXTRA_LOGGING_HEADER,
    TransactionContext,
    allocate_transaction,
)
from txpipe.exceptions import EntityMaterializationTimeout
from txpipe.rejections import (
    RouteRejected,
    error_response,
    prioritize_rejections,
    rejection_response,
)

# Upper bound on buffering a response body, in seconds
STRICT_ENTITY_TIMEOUT_SEC = 30.0

# Component name in completion log lines
COMPONENT_NAME = "HttpService"

TIMEOUT_MESSAGE = "The server was not able to produce a timely response to your request."

_RESERVED_HEADER = EXTRA_LOGGING_HEADER.lower().encode("latin-1")


def default_loglevel_for_route(path: str) -> int:
    return logging.INFO


def get_transaction(request: Request) -> TransactionContext:
    """FastAPI dependency returning the transaction of the current request."""
    return request.state.transaction


def scrub_reserved_header(scope: dict) -> None:
    """Remove the reserved header from the request scope."""
    headers = scope.get("headers", [])
    scope["headers"] = [(key, value) for key, value in headers if key.lower() != _RESERVED_HEADER]


async def to_strict_entity(response: Response, timeout: float) -> Response:
    """Buffer the whole response body, waiting at most ``timeout`` seconds."""
    body_iterator = getattr(response, "body_iterator", None)
    if body_iterator is None:
        return response

    async def _drain() -> bytes:
        chunks = []
        async for chunk in body_iterator:
            chunks.append(chunk if isinstance(chunk, bytes) else chunk.encode(response.charset))
        return b"".join(chunks)

    try:
        body = await asyncio.wait_for(_drain(), timeout=timeout)
    except asyncio.TimeoutError:
        raise EntityMaterializationTimeout(timeout) from None

    strict = Response(content=body, status_code=response.status_code)
    headers = [(key, value) for key, value in response.raw_headers if key.lower() != b"content-length"]
    advertised = [value for key, value in response.raw_headers if key.lower() == b"content-length"]
    status_code = response.status_code
    if status_code < 200 or status_code == 204:
        # These responses never carry a length
        advertised = []
    elif status_code != 304 and (body or not advertised):
        # HEAD and 304 responses have no body but keep the advertised length
        advertised = [str(len(body)).encode("latin-1")]
    strict.raw_headers = headers + [(b"content-length", value) for value in advertised[:1]]
    return strict


class TransactionPipelineMiddleware(BaseHTTPMiddleware):
    """Wraps the application's routes with transaction identity, logging and metrics."""

    def __init__(
        self,
        app: ASGIApp,
        settings: Settings | None = None,
        metric_emitter: MetricEmitter | None = None,
        loglevel_for_route: Callable[[str], int] = default_loglevel_for_route,
        entity_timeout: float = STRICT_ENTITY_TIMEOUT_SEC,
    ):
        super().__init__(app)
        self.settings = settings or get_settings()
        self.metric_emitter = metric_emitter or get_metric_emitter()
        self.loglevel_for_route = loglevel_for_route
        self.entity_timeout = entity_timeout

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Run the request through the pipeline."""
        transid = allocate_transaction(request.headers)
        request.state.transaction = transid

        emit_log_entry(self._safely(self.log_request_info, request, transid), transid)

        scrub_reserved_header(request.scope)

        # Stays None unless the handler's response was fully buffered
        completed: Response | None = None
        try:
            try:
                response = await call_next(request)
            except RouteRejected as rejected:
                response = rejection_response(prioritize_rejections(rejected.rejections), transid)
            completed = await to_strict_entity(response, self.entity_timeout)
        except EntityMaterializationTimeout as exc:
            get_logger(__name__).warning(
                "Response entity timed out", transaction_id=transid.id, timeout=exc.timeout
            )
            return error_response(503, TIMEOUT_MESSAGE, transid)
        finally:
            emit_log_entry(
                self._safely(self.log_response_info, request, transid, completed), transid
            )

        return completed

    def log_request_info(self, request: Request, transid: TransactionContext) -> LogEntry:
        """Entry logged when a request arrives."""
        method = request.method
        path = request.url.path
        query = request.url.query
        level = self.loglevel_for_route(path)
        return LogEntry(f"[{transid}] {method} {path} {query}", level)

    def log_response_info(
        self, request: Request, transid: TransactionContext, response: Response | None
    ) -> LogEntry | None:
        """Record metrics for a completed response and build its log entry.

        Requests that did not complete are not measured.
        """
        if response is None:
            return None

        elapsed = transid.elapsed

        token = http_token(request.method, response.status_code)
        self.metric_emitter.emit_histogram_metric(token, elapsed)
        self.metric_emitter.emit_counter_metric(token)

        if not self.settings.metrics_log:
            return None
        level = self.loglevel_for_route(request.url.path)
        marker = format_marker(token, transid.delta_to_start_ms)
        return LogEntry(f"[{transid}] [{COMPONENT_NAME}] {marker}", level)

    @staticmethod
    def _safely(build, *args) -> LogEntry | None:
        # Entry construction runs user policies; its failures stay out of the response.
        try:
            return build(*args)
        except Exception:
            fallback_logger.warning("Failed to build log entry", exc_info=True)
            return None


def install_pipeline(
    app: FastAPI,
    settings: Settings,
    metric_emitter: MetricEmitter,
    loglevel_for_route: Callable[[str], int] | None = None,
) -> None:
    """Install the pipeline as the outermost application middleware."""
    app.add_middleware(
        TransactionPipelineMiddleware,
        settings=settings,
        metric_emitter=metric_emitter,
        loglevel_for_route=loglevel_for_route or settings.loglevel_for_route(),
    )
