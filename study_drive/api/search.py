"""
Drive search endpoint
"""
import logging
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import FileResponse, FolderResponse, SearchResponse
from ..services import Actor
from .dependencies import CurrentDrive, DbSession, Hierarchy, rate_limited

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive/search", tags=["search"])


@router.get("", response_model=SearchResponse)
async def search_drive(
    actor: Annotated[Actor, Depends(rate_limited("search"))],
    drive: CurrentDrive,
    db: DbSession,
    hierarchy: Hierarchy,
    q: Annotated[str, Query(max_length=255)] = "",
    kind: Annotated[Literal["all", "file", "folder"], Query(alias="type")] = "all",
    file_type: Optional[str] = None
):
    """Case-insensitive name search over live folders and files"""
    logger.info(f"🔍 Search '{q}' ({kind}) in drive {drive.id}")
    results = await hierarchy.search(db, actor, drive.id, q, kind=kind, file_type=file_type)
    return SearchResponse(
        query=q,
        folders=[FolderResponse.model_validate(f) for f in results.folders],
        files=[FileResponse.model_validate(f) for f in results.files]
    )
