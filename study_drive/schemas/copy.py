"""
Pydantic schemas for copies, bulk operations and copy requests
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import CopyRequestStatus
from .activity import PaginationInfo
from .file import FileResponse
from .folder import FolderResponse


class CopyFolderRequest(BaseModel):
    parent_id: Optional[str] = None  # None = copy to drive root
    name: Optional[str] = Field(None, min_length=1, max_length=255)  # Default "<name> (Copy)"


class CopyFileRequest(BaseModel):
    folder_id: Optional[str] = None  # None = copy to drive root
    name: Optional[str] = Field(None, min_length=1, max_length=255)


class CopyResponse(BaseModel):
    folder: Optional[FolderResponse] = None  # Set for folder copies
    files: list[FileResponse]
    bytes_charged: int


class BulkRequest(BaseModel):
    operation: Literal["delete", "move", "restore", "copy"]
    item_type: Literal["file", "folder"]
    item_ids: list[str] = Field(..., min_length=1, max_length=100)
    target_folder_id: Optional[str] = None  # Destination for move/copy, None = drive root


class BulkFailureItem(BaseModel):
    id: str
    code: str
    error: str


class BulkResponse(BaseModel):
    operation: str
    succeeded: list[str]
    failed: list[BulkFailureItem]


class CopyRequestCreate(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=36)
    item_type: Literal["file", "folder"]
    target_id: str
    message: Optional[str] = Field(None, max_length=1000)


class CopyRequestAction(BaseModel):
    action: Literal["approve", "deny"]


class CopyRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    from_user_id: str  # Requester
    to_user_id: str  # Owner of the item
    item_type: str
    target_id: str
    message: Optional[str]
    status: CopyRequestStatus
    created_at: datetime
    updated_at: datetime


class CopyRequestResult(BaseModel):
    request: CopyRequestResponse
    copied: Optional[CopyResponse] = None  # Set when the copy was performed


class CopyRequestListResponse(BaseModel):
    requests: list[CopyRequestResponse]
    pagination: PaginationInfo
