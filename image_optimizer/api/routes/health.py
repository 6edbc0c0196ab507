"""Health check endpoints."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from image_optimizer.api.schemas import ReadinessResponse

router = APIRouter(tags=["health"])


@router.get("/ping", response_class=PlainTextResponse)
async def ping():
    return "Hello from Image Optimizer API!"


@router.get("/health")
async def health_check():
    """Simple health check."""
    return {"status": "ok"}


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check():
    """Readiness check: writable upload dir and every output encoder present."""
    from image_optimizer.core.processors.image import available_encoders
    from image_optimizer.services.storage import get_storage_service

    storage = get_storage_service()

    checks = {"storage": storage.is_writable()}
    checks.update(
        {f"encoder_{fmt}": ok for fmt, ok in available_encoders().items()}
    )

    if all(checks.values()):
        return ReadinessResponse(status="ready", checks=checks)
    else:
        return ReadinessResponse(status="not ready", checks=checks)
