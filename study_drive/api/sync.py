"""
Subject mirror endpoint
"""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from ..schemas import SyncResponse
from ..services import Actor, SubjectSyncService
from .dependencies import DbSession, get_sync_service, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/subjects", tags=["subjects"])


@router.post("/{subject_id}/sync", response_model=SyncResponse)
async def sync_subject(
    subject_id: str,
    actor: Annotated[Actor, Depends(rate_limited("apiCall"))],
    db: DbSession,
    subject_sync: Annotated[SubjectSyncService, Depends(get_sync_service)]
):
    """Copy the subject's material files into its drive folder"""
    logger.info(f"📚 Sync subject {subject_id} for {actor.id}")
    result = await subject_sync.sync_subject_to_drive(db, actor, subject_id)
    return SyncResponse.model_validate(result)
