"""
Activity feed endpoint
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..schemas import ActivityItem, ActivityListResponse, PaginationInfo
from ..services import ActivityAction, ActivityLogger, Actor
from .dependencies import CurrentDrive, DbSession, get_activity, rate_limited

router = APIRouter(prefix="/drive/activity", tags=["activity"])

_FILTERS = {"all"} | {a.value for a in ActivityAction}


@router.get("", response_model=ActivityListResponse)
async def list_activity(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    activity: Annotated[ActivityLogger, Depends(get_activity)],
    action: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 20
):
    """Newest-first activity with per-category counts"""
    if action is not None and action not in _FILTERS:
        raise HTTPException(status_code=400, detail=f"Unknown action filter: {action}")

    result = await activity.query(db, drive.id, action=action, page=page, limit=limit)
    return ActivityListResponse(
        activities=[ActivityItem.model_validate(a) for a in result.items],
        stats=result.stats,
        pagination=PaginationInfo(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages
        )
    )
