"""User criteria API routes."""

from fastapi import APIRouter, HTTPException, status

from mintsentry.api.dependencies import DetectionContextDep
from mintsentry.models.criteria import UserCriteria

router = APIRouter(prefix="/criteria", tags=["criteria"])


@router.get("/{user_id}", response_model=UserCriteria)
async def get_criteria(user_id: str, context: DetectionContextDep) -> UserCriteria:
    """Get a user's criteria (defaults if never set)."""
    return await context.criteria_store.get_user_criteria(user_id)


@router.put("/{user_id}", response_model=UserCriteria)
async def put_criteria(
    user_id: str,
    criteria: UserCriteria,
    context: DetectionContextDep,
) -> UserCriteria:
    """Replace a user's criteria. Takes effect from the next detection cycle."""
    setter = getattr(context.criteria_store, "set_user_criteria", None)
    if setter is None:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Criteria store is read-only",
        )
    await setter(user_id, criteria)
    return criteria
