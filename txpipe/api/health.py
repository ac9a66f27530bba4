"""Health check endpoints."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health/live")
def health_live() -> dict[str, str]:
    """Health check endpoint for liveness probe."""
    return {"status": "ok"}
