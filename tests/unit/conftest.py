"""Unit test configuration."""

import asyncio
import os

import pytest
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry
from starlette.responses import Response, StreamingResponse

os.environ.setdefault("APP_ENV", "test")

from txpipe.core.metrics import MetricEmitter  # noqa: E402
from txpipe.core.transaction import TransactionContext  # noqa: E402
from txpipe.factory import create_app  # noqa: E402
from txpipe.middleware import get_transaction  # noqa: E402
from txpipe.rejections import (  # noqa: E402
    AuthorizationFailedRejection,
    MethodRejection,
    MissingHeaderRejection,
    RouteRejected,
    UnacceptedResponseContentTypeRejection,
)


def build_routes() -> APIRouter:
    """Route handlers the pipeline wraps in the unit tests."""
    routes = APIRouter()

    @routes.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @routes.get("/headers")
    async def headers(request: Request) -> dict[str, dict[str, str]]:
        return {"headers": dict(request.headers)}

    @routes.get("/transaction")
    async def transaction(
        transid: TransactionContext = Depends(get_transaction),
    ) -> dict:
        await asyncio.sleep(0.01)
        return {"id": transid.id, "extra_logging": transid.extra_logging}

    @routes.get("/stream")
    async def stream() -> StreamingResponse:
        async def body():
            yield b"hello "
            yield b"world"

        return StreamingResponse(body(), media_type="text/plain")

    @routes.get("/slow-stream")
    async def slow_stream() -> StreamingResponse:
        async def body():
            yield b"first"
            await asyncio.sleep(1)
            yield b"second"

        return StreamingResponse(body(), media_type="text/plain")

    @routes.post("/items")
    async def create_item() -> dict[str, str]:
        return {"status": "created"}

    @routes.delete("/items/{item_id}", status_code=204)
    async def delete_item(item_id: str) -> Response:
        return Response(status_code=204)

    @routes.get("/unaccepted")
    async def unaccepted():
        raise RouteRejected(
            MissingHeaderRejection("X-Tenant"),
            UnacceptedResponseContentTypeRejection(("application/json",)),
            MethodRejection("POST"),
        )

    @routes.get("/forbidden")
    async def forbidden():
        raise RouteRejected(AuthorizationFailedRejection(), MissingHeaderRejection("X-Tenant"))

    @routes.get("/boom")
    async def boom():
        raise ValueError("handler failure")

    return routes


@pytest.fixture
def routes() -> APIRouter:
    return build_routes()


@pytest.fixture
def emitter() -> MetricEmitter:
    """Emitter backed by a private registry."""
    return MetricEmitter(registry=CollectorRegistry())


@pytest.fixture
def app(settings, routes, emitter) -> FastAPI:
    """Return a fresh app instance for unit tests."""
    return create_app(settings, routes=routes, metric_emitter=emitter)


@pytest.fixture
def client(app) -> TestClient:
    """Create test client."""
    return TestClient(app)
