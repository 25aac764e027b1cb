"""
Pydantic schemas for file requests and responses
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FileResponse(BaseModel):
    """File metadata without content"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    drive_id: str
    folder_id: Optional[str]  # None = drive root
    original_name: str
    mime_type: str
    file_type: str
    size_bytes: int
    content_hash: str  # SHA-256, also served as ETag
    source_ref: Optional[str]
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]


class UploadResponse(BaseModel):
    status: str  # "created" or "reused"
    file: FileResponse
    duplicate_of: Optional[str] = Field(None, description="Live file with identical content, if any")


class FileListResponse(BaseModel):
    folder_id: Optional[str]
    items: list[FileResponse]
    total: int
    page: int
    limit: int


class UpdateFileRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MoveFileRequest(BaseModel):
    folder_id: Optional[str] = None  # None = move to drive root
