"""
Pydantic schemas for subject sync
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SyncFailureItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ref_id: str
    name: str
    code: str
    message: str


class SyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    synced: int
    total: int
    folder_id: Optional[str]
    failed: list[SyncFailureItem]
