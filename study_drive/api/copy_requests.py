"""
Copy request endpoints: ask for, approve, deny and cancel copies between drives
"""
import logging
import math
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query, status

from ..models import CopyRequestStatus
from ..schemas import (
    CopyRequestAction,
    CopyRequestCreate,
    CopyRequestListResponse,
    CopyRequestResponse,
    CopyRequestResult,
    CopyResponse,
    FileResponse,
    FolderResponse,
    PaginationInfo,
)
from ..services import Actor, CopyRequestOutcome, CopyRequestService
from .dependencies import DbSession, get_copy_requests, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/copy-requests", tags=["copy-requests"])

CopyRequests = Annotated[CopyRequestService, Depends(get_copy_requests)]


def _result(outcome: CopyRequestOutcome) -> CopyRequestResult:
    copied = None
    if outcome.copy is not None:
        copied = CopyResponse(
            folder=FolderResponse.model_validate(outcome.copy.folder) if outcome.copy.folder else None,
            files=[FileResponse.model_validate(f) for f in outcome.copy.files],
            bytes_charged=outcome.copy.bytes_charged
        )
    return CopyRequestResult(request=CopyRequestResponse.model_validate(outcome.request), copied=copied)


@router.get("", response_model=CopyRequestListResponse)
async def list_copy_requests(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    copy_requests: CopyRequests,
    direction: Literal["all", "sent", "received"] = "all",
    request_status: Annotated[Optional[CopyRequestStatus], Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50
):
    """Requests the caller sent and/or received, newest first"""
    result = await copy_requests.list_requests(db, actor, direction, request_status, page, limit)
    return CopyRequestListResponse(
        requests=[CopyRequestResponse.model_validate(r) for r in result.items],
        pagination=PaginationInfo(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=math.ceil(result.total / result.limit) if result.total else 0
        )
    )


@router.post("", response_model=CopyRequestResult, status_code=status.HTTP_201_CREATED)
async def create_copy_request(
    request: CopyRequestCreate,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    copy_requests: CopyRequests
):
    """Ask another user for a copy; approved at once when their drive allows copying"""
    logger.info(f"📨 Copy request for {request.item_type} {request.target_id} from {request.owner_id}")
    outcome = await copy_requests.request_copy(
        db, actor, request.owner_id, request.item_type, request.target_id, request.message
    )
    return _result(outcome)


@router.put("/{request_id}", response_model=CopyRequestResult)
async def respond_to_copy_request(
    request_id: str,
    request: CopyRequestAction,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    copy_requests: CopyRequests
):
    """Owner approves (copies the item) or denies a pending request"""
    logger.info(f"📝 {request.action} copy request {request_id}")
    if request.action == "approve":
        outcome = await copy_requests.approve(db, actor, request_id)
    else:
        outcome = await copy_requests.deny(db, actor, request_id)
    return _result(outcome)


@router.delete("/{request_id}")
async def cancel_copy_request(
    request_id: str,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    copy_requests: CopyRequests
):
    """Requester withdraws a pending request"""
    await copy_requests.cancel(db, actor, request_id)
    return {"status": "cancelled", "request_id": request_id}
