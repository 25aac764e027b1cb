"""
Bulk endpoint: one operation over many files or folders
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from ..schemas import BulkFailureItem, BulkRequest, BulkResponse
from ..services import Actor
from .dependencies import DbSession, Hierarchy, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/bulk", tags=["bulk"])


@router.post("", response_model=BulkResponse)
async def bulk_operation(
    request: BulkRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Apply delete, move, restore or copy to up to 100 items; failures are reported per item"""
    logger.info(f"📦 Bulk {request.operation} on {len(request.item_ids)} {request.item_type}s")
    result = await hierarchy.bulk(
        db, actor, request.operation, request.item_type, request.item_ids,
        target_folder_id=request.target_folder_id
    )
    return BulkResponse(
        operation=result.operation.value,
        succeeded=result.succeeded,
        failed=[BulkFailureItem(id=f.id, code=f.code, error=f.message) for f in result.failed]
    )
