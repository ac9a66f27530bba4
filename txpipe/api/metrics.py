"""Prometheus metrics endpoint."""

from fastapi import APIRouter, HTTPException, Request
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    if not request.app.state.settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics disabled")

    return Response(
        content=generate_latest(request.app.state.metric_emitter.registry),
        media_type=CONTENT_TYPE_LATEST,
    )
