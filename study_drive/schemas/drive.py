"""
Pydantic schemas for drive settings and usage
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models import CopyPolicy


class DriveResponse(BaseModel):
    """Drive with quota usage"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    storage_used: int
    storage_limit: int
    bandwidth_used: int
    bandwidth_limit: int
    bandwidth_reset_at: datetime
    is_private: bool
    copy_policy: CopyPolicy
    created_at: datetime


class UpdateDriveRequest(BaseModel):
    """Partial update of drive settings; omitted fields stay unchanged"""
    is_private: Optional[bool] = None
    copy_policy: Optional[CopyPolicy] = None


class BandwidthResponse(BaseModel):
    used: int
    limit: int
    reset_at: datetime
    percentage: float = Field(..., description="Share of the daily limit already used (0-100)")
