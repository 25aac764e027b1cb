"""
Pydantic schemas for the trash
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel


class TrashItem(BaseModel):
    id: str
    type: Literal["file", "folder"]
    name: str
    size: Optional[int] = None  # Files only
    parent_id: Optional[str] = None  # Folder the item was in
    deleted_at: datetime


class TrashListResponse(BaseModel):
    items: list[TrashItem]


class RestoreRequest(BaseModel):
    item_id: str
    item_type: Literal["file", "folder"]


class RestoreResponse(BaseModel):
    success: bool
    type: Literal["file", "folder"]
    name: str
    path: Optional[str] = None  # Folders only


class PurgeResponse(BaseModel):
    folders: int
    files: int
    bytes_released: int
    blob_failures: int
