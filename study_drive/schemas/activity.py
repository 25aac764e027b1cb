"""
Pydantic schemas for the activity feed
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ActivityItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_id: str
    action: str
    target_type: str
    target_id: Optional[str]
    target_name: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="details")
    created_at: datetime


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ActivityListResponse(BaseModel):
    activities: list[ActivityItem]
    stats: dict[str, int]
    pagination: PaginationInfo
