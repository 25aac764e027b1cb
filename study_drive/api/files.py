"""
File endpoints: upload, metadata, download, rename, move, trash
"""
import logging
from typing import Annotated, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from ..core.errors import FileTooLargeError
from ..schemas import (
    CopyFileRequest,
    CopyResponse,
    FileListResponse,
    FileResponse,
    MoveFileRequest,
    UpdateFileRequest,
    UploadResponse,
)
from ..services import Actor, DuplicatePolicy
from .dependencies import CurrentDrive, DbSession, Hierarchy, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/files", tags=["files"])


@router.get("", response_model=FileListResponse)
async def list_files(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy,
    folder_id: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50
):
    """List live files in folder_id (omit for the drive root)"""
    result = await hierarchy.list_files(db, actor, drive.id, folder_id, page, limit)
    return FileListResponse(
        folder_id=folder_id,
        items=[FileResponse.model_validate(f) for f in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit
    )


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Annotated[UploadFile, File(description="File to upload")],
    actor: Annotated[Actor, Depends(rate_limited("fileUpload"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy,
    folder_id: Annotated[Optional[str], Form()] = None,
    duplicate_policy: Annotated[Optional[DuplicatePolicy], Form()] = None
):
    """
    Upload a file into folder_id (omit for the drive root).

    duplicate_policy overrides the server default for identical content:
    allow, reuse or reject.
    """
    logger.info(f"📤 Upload {file.filename} into {folder_id or 'root'} for {actor.id}")

    # Refuse oversized uploads before buffering them
    if file.size is not None and file.size > hierarchy.max_file_size:
        raise FileTooLargeError(file.size, hierarchy.max_file_size)

    content = await file.read()
    result = await hierarchy.create_file(
        db, actor, drive.id,
        name=file.filename or "untitled",
        content=content,
        mime_type=file.content_type or "application/octet-stream",
        folder_id=folder_id,
        policy=duplicate_policy
    )
    return UploadResponse(
        status="reused" if result.reused else "created",
        file=FileResponse.model_validate(result.file),
        duplicate_of=result.duplicate_of
    )


@router.get("/{file_id}", response_model=FileResponse)
async def get_file(
    file_id: str,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Get file metadata"""
    return FileResponse.model_validate(await hierarchy.get_file(db, actor, file_id))


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """
    Download file content with streaming.

    - Charges the drive's daily bandwidth before the first byte
    - Streams from the blob store (constant memory)
    - Content hash as ETag
    """
    logger.info(f"📥 Download file {file_id}")
    file_record, chunks = await hierarchy.read_file(db, actor, file_id)

    safe_filename = quote(file_record.original_name, safe='')
    return StreamingResponse(
        chunks,
        media_type=file_record.mime_type,
        headers={
            "Content-Disposition": f'attachment; filename="{safe_filename}"',
            "Content-Length": str(file_record.size_bytes),
            "ETag": f'"{file_record.content_hash}"',
        }
    )


@router.patch("/{file_id}", response_model=FileResponse)
async def rename_file(
    file_id: str,
    request: UpdateFileRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Rename a file"""
    logger.info(f"✏️  Rename file {file_id} to {request.name}")
    return FileResponse.model_validate(await hierarchy.rename_file(db, actor, file_id, request.name))


@router.post("/{file_id}/move", response_model=FileResponse)
async def move_file(
    file_id: str,
    request: MoveFileRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Move a file to another folder (null = drive root)"""
    logger.info(f"🔄 Move file {file_id} to folder {request.folder_id}")
    return FileResponse.model_validate(await hierarchy.move_file(db, actor, file_id, request.folder_id))


@router.delete("/{file_id}")
async def delete_file(
    file_id: str,
    actor: Annotated[Actor, Depends(rate_limited("fileDelete"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Move a file to the trash (storage stays charged until purged)"""
    logger.info(f"🗑️  DELETE file {file_id}")
    await hierarchy.soft_delete_file(db, actor, file_id)
    return {"status": "trashed", "file_id": file_id}


@router.post("/{file_id}/copy", response_model=CopyResponse, status_code=status.HTTP_201_CREATED)
async def copy_file(
    file_id: str,
    request: CopyFileRequest,
    actor: Annotated[Actor, Depends(rate_limited("fileUpload"))],
    db: DbSession,
    hierarchy: Hierarchy
):
    """Copy a file into folder_id (null = drive root)"""
    logger.info(f"📋 Copy file {file_id} to folder {request.folder_id}")
    result = await hierarchy.copy_file(db, actor, file_id, request.folder_id, request.name)
    return CopyResponse(
        files=[FileResponse.model_validate(f) for f in result.files],
        bytes_charged=result.bytes_charged
    )
