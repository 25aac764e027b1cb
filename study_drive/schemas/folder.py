"""
Pydantic schemas for folder requests and responses
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FolderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    drive_id: str
    parent_id: Optional[str]  # None = drive root
    name: str
    path: str
    subject_id: Optional[str]
    is_public: bool
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime]


class FolderDetailResponse(BaseModel):
    folder: FolderResponse
    breadcrumbs: list[FolderResponse]  # Root first, ending with the folder itself


class FolderListResponse(BaseModel):
    parent_id: Optional[str]
    items: list[FolderResponse]
    total: int
    page: int
    limit: int


class CreateFolderRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[str] = None  # None = create at drive root
    is_public: bool = False


class UpdateFolderRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    is_public: Optional[bool] = None


class MoveFolderRequest(BaseModel):
    parent_id: Optional[str] = None  # None = move to drive root
