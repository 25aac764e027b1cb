"""
Folder endpoints
"""
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from ..schemas import (
    CopyFolderRequest,
    CopyResponse,
    CreateFolderRequest,
    FileResponse,
    FolderDetailResponse,
    FolderListResponse,
    FolderResponse,
    MoveFolderRequest,
    UpdateFolderRequest,
)
from ..services import Actor
from .dependencies import CurrentDrive, DbSession, Hierarchy, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/folders", tags=["folders"])


@router.get("", response_model=FolderListResponse)
async def list_folders(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy,
    parent_id: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50
):
    """List live folders under parent_id (omit for the drive root)"""
    result = await hierarchy.list_folders(db, actor, drive.id, parent_id, page, limit)
    return FolderListResponse(
        parent_id=parent_id,
        items=[FolderResponse.model_validate(f) for f in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit
    )


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    request: CreateFolderRequest,
    actor: Annotated[Actor, Depends(rate_limited("folderCreate"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy
):
    """Create a new folder"""
    logger.info(f"📁 Creating folder: name={request.name} parent_id={request.parent_id}")
    folder = await hierarchy.create_folder(
        db, actor, drive.id, request.name,
        parent_id=request.parent_id,
        is_public=request.is_public
    )
    return FolderResponse.model_validate(folder)


@router.get("/{folder_id}", response_model=FolderDetailResponse)
async def get_folder(
    folder_id: str,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Folder metadata with its breadcrumb trail"""
    chain = await hierarchy.breadcrumbs(db, actor, folder_id)
    return FolderDetailResponse(
        folder=FolderResponse.model_validate(chain[-1]),
        breadcrumbs=[FolderResponse.model_validate(f) for f in chain]
    )


@router.patch("/{folder_id}", response_model=FolderResponse)
async def update_folder(
    folder_id: str,
    request: UpdateFolderRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Rename and/or change visibility"""
    logger.info(f"✏️  PATCH folder {folder_id}: {request.model_dump(exclude_none=True)}")
    folder = await hierarchy.get_folder(db, actor, folder_id)
    if request.name is not None:
        folder = await hierarchy.rename_folder(db, actor, folder_id, request.name)
    if request.is_public is not None:
        folder = await hierarchy.set_folder_public(db, actor, folder_id, request.is_public)
    return FolderResponse.model_validate(folder)


@router.post("/{folder_id}/move", response_model=FolderResponse)
async def move_folder(
    folder_id: str,
    request: MoveFolderRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Move a folder under another parent (null = drive root)"""
    logger.info(f"🔄 Move folder {folder_id} to parent {request.parent_id}")
    folder = await hierarchy.move_folder(db, actor, folder_id, request.parent_id)
    return FolderResponse.model_validate(folder)


@router.delete("/{folder_id}")
async def delete_folder(
    folder_id: str,
    actor: Annotated[Actor, Depends(rate_limited("fileDelete"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Move a folder and its contents to the trash"""
    logger.info(f"🗑️  DELETE folder {folder_id}")
    await hierarchy.soft_delete_folder(db, actor, folder_id)
    return {"status": "trashed", "folder_id": folder_id}


@router.post("/{folder_id}/copy", response_model=CopyResponse, status_code=status.HTTP_201_CREATED)
async def copy_folder(
    folder_id: str,
    request: CopyFolderRequest,
    actor: Annotated[Actor, Depends(rate_limited("fileUpload"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Copy a folder with all its live contents (charged to storage)"""
    logger.info(f"📋 Copy folder {folder_id} to parent {request.parent_id}")
    result = await hierarchy.copy_folder(db, actor, folder_id, request.parent_id, request.name)
    return CopyResponse(
        folder=FolderResponse.model_validate(result.folder),
        files=[FileResponse.model_validate(f) for f in result.files],
        bytes_charged=result.bytes_charged
    )
