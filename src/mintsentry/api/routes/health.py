"""Health check endpoint with detection status."""

from typing import Any

from fastapi import APIRouter

from mintsentry.api.dependencies import DetectionLoopDep, SettingsDep

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(settings: SettingsDep, loop: DetectionLoopDep) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        dict with status, version, trading mode and detection summary.
    """
    return {
        "status": "ok",
        "version": settings.app_version,
        "trading_mode": settings.trading_mode,
        "detection": {
            "source_kind": loop.source_kind,
            "source_active": loop.source_active,
            "armed_count": len(loop.armed_users),
        },
    }
