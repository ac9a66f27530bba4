"""Service-level routes mounted next to the wrapped handlers."""

from fastapi import APIRouter

from txpipe.api.health import router as health_router
from txpipe.api.metrics import router as metrics_router

service_router = APIRouter()
service_router.include_router(health_router)
service_router.include_router(metrics_router)

__all__ = ["service_router"]
