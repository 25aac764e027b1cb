"""
Drive settings and usage endpoints
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from ..models import Drive
from ..schemas import BandwidthResponse, DriveResponse, UpdateDriveRequest
from ..services import Actor, DriveService, QuotaAccountant
from .dependencies import CurrentDrive, DbSession, get_drive_service, get_quota, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive", tags=["drive"])


@router.get("", response_model=DriveResponse)
async def get_drive(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive
):
    """Get the caller's drive (created on first access)"""
    logger.info(f"💾 GET /drive for {actor.id}")
    return DriveResponse.model_validate(drive)


@router.patch("", response_model=DriveResponse)
async def update_drive(
    request: UpdateDriveRequest,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    drives: Annotated[DriveService, Depends(get_drive_service)]
):
    """Update privacy and copy policy"""
    logger.info(f"⚙️  PATCH /drive for {actor.id}: {request.model_dump(exclude_none=True)}")
    drive = await drives.update_settings(
        db, drive,
        is_private=request.is_private,
        copy_policy=request.copy_policy
    )
    return DriveResponse.model_validate(drive)


@router.get("/bandwidth", response_model=BandwidthResponse)
async def get_bandwidth(
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    drive: CurrentDrive,
    db: DbSession,
    quota: Annotated[QuotaAccountant, Depends(get_quota)]
):
    """Daily download bandwidth usage (resets lazily)"""
    status = await quota.bandwidth_status(db, drive.id)
    return BandwidthResponse(
        used=status.used,
        limit=status.limit,
        reset_at=status.reset_at,
        percentage=status.percentage
    )
