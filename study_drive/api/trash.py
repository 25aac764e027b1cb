"""
Trash endpoints: list, restore, permanent delete
"""
import logging
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import PurgeResponse, RestoreRequest, RestoreResponse, TrashItem, TrashListResponse
from ..services import Actor, PurgeResult
from .dependencies import CurrentDrive, DbSession, Hierarchy, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/trash", tags=["trash"])


def _purge_response(result: PurgeResult) -> PurgeResponse:
    return PurgeResponse(
        folders=result.folders,
        files=result.files,
        bytes_released=result.bytes_released,
        blob_failures=result.blob_failures
    )


@router.get("", response_model=TrashListResponse)
async def list_trash(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy
):
    """List trashed items, most recently deleted first"""
    trash = await hierarchy.list_trash(db, actor, drive.id)
    items = [
        TrashItem(id=f.id, type="file", name=f.original_name, size=f.size_bytes,
                  parent_id=f.folder_id, deleted_at=f.deleted_at)
        for f in trash.files
    ] + [
        TrashItem(id=f.id, type="folder", name=f.name, parent_id=f.parent_id, deleted_at=f.deleted_at)
        for f in trash.folders
    ]
    items.sort(key=lambda item: item.deleted_at, reverse=True)
    return TrashListResponse(items=items)


@router.post("/restore", response_model=RestoreResponse)
async def restore_item(
    request: RestoreRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Restore a file or folder from the trash"""
    logger.info(f"♻️ Restore {request.item_type} {request.item_id}")
    if request.item_type == "file":
        file_record = await hierarchy.restore_file(db, actor, request.item_id)
        return RestoreResponse(success=True, type="file", name=file_record.original_name)

    folder = await hierarchy.restore_folder(db, actor, request.item_id)
    return RestoreResponse(success=True, type="folder", name=folder.name, path=folder.path)


@router.delete("/expired", response_model=PurgeResponse)
async def purge_expired(
    actor: Annotated[Actor, Depends(rate_limited("fileDelete"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy,
    retention_days: Annotated[Optional[int], Query(ge=0)] = None
):
    """Permanently delete items trashed longer than the retention period"""
    result = await hierarchy.purge_expired_trash(db, actor, drive.id, retention_days)
    return _purge_response(result)


@router.delete("/{item_type}/{item_id}", response_model=PurgeResponse)
async def purge_item(
    item_type: Literal["file", "folder"],
    item_id: str,
    actor: Annotated[Actor, Depends(rate_limited("fileDelete"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Permanently delete an item and release its storage"""
    logger.info(f"🔥 Purge {item_type} {item_id}")
    if item_type == "file":
        result = await hierarchy.purge_file(db, actor, item_id)
    else:
        result = await hierarchy.purge_folder(db, actor, item_id)
    return _purge_response(result)
