"""API routers"""
from fastapi import APIRouter

from . import activity, bulk, copy_requests, drive, files, folders, search, sync, trash

router = APIRouter()
router.include_router(drive.router)
router.include_router(folders.router)
router.include_router(files.router)
router.include_router(trash.router)
router.include_router(bulk.router)
router.include_router(copy_requests.router)
router.include_router(activity.router)
router.include_router(search.router)
router.include_router(sync.router)

__all__ = ["router"]
