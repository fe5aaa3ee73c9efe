"""Detection control API routes."""

from fastapi import APIRouter
from pydantic import BaseModel

from mintsentry.api.dependencies import DetectionLoopDep
from mintsentry.models.detection import DetectionStatus

router = APIRouter(prefix="/detection", tags=["detection"])


class DetectionToggleResponse(BaseModel):
    """Response from start/stop."""

    user_id: str
    changed: bool
    armed: bool
    message: str


@router.post("/{user_id}/start", response_model=DetectionToggleResponse)
async def start_detection(user_id: str, loop: DetectionLoopDep) -> DetectionToggleResponse:
    """Arm token detection for a user. Repeated calls are no-ops."""
    changed = await loop.start_detection(user_id)
    return DetectionToggleResponse(
        user_id=user_id,
        changed=changed,
        armed=loop.is_armed(user_id),
        message="Token detection started" if changed else "Token detection is already running",
    )


@router.post("/{user_id}/stop", response_model=DetectionToggleResponse)
async def stop_detection(user_id: str, loop: DetectionLoopDep) -> DetectionToggleResponse:
    """Stop token detection for a user. Repeated calls are no-ops."""
    changed = await loop.stop_detection(user_id)
    return DetectionToggleResponse(
        user_id=user_id,
        changed=changed,
        armed=loop.is_armed(user_id),
        message="Token detection stopped" if changed else "Token detection is not running",
    )


@router.get("/status", response_model=DetectionStatus)
async def detection_status(loop: DetectionLoopDep) -> DetectionStatus:
    """Armed users, source state, cache and rate limiter statistics."""
    return loop.status()
