"""Schemas module exports"""
from .activity import ActivityItem, ActivityListResponse, PaginationInfo
from .copy import (
    BulkFailureItem,
    BulkRequest,
    BulkResponse,
    CopyFileRequest,
    CopyFolderRequest,
    CopyRequestAction,
    CopyRequestCreate,
    CopyRequestListResponse,
    CopyRequestResponse,
    CopyRequestResult,
    CopyResponse,
)
from .drive import BandwidthResponse, DriveResponse, UpdateDriveRequest
from .file import FileListResponse, FileResponse, MoveFileRequest, UpdateFileRequest, UploadResponse
from .folder import (
    CreateFolderRequest,
    FolderDetailResponse,
    FolderListResponse,
    FolderResponse,
    MoveFolderRequest,
    UpdateFolderRequest,
)
from .search import SearchResponse
from .sync import SyncFailureItem, SyncResponse
from .trash import PurgeResponse, RestoreRequest, RestoreResponse, TrashItem, TrashListResponse

__all__ = [
    "ActivityItem",
    "ActivityListResponse",
    "PaginationInfo",
    "BulkFailureItem",
    "BulkRequest",
    "BulkResponse",
    "CopyFileRequest",
    "CopyFolderRequest",
    "CopyRequestAction",
    "CopyRequestCreate",
    "CopyRequestListResponse",
    "CopyRequestResponse",
    "CopyRequestResult",
    "CopyResponse",
    "BandwidthResponse",
    "DriveResponse",
    "UpdateDriveRequest",
    "FileListResponse",
    "FileResponse",
    "MoveFileRequest",
    "UpdateFileRequest",
    "UploadResponse",
    "CreateFolderRequest",
    "FolderDetailResponse",
    "FolderListResponse",
    "FolderResponse",
    "MoveFolderRequest",
    "UpdateFolderRequest",
    "SearchResponse",
    "SyncFailureItem",
    "SyncResponse",
    "PurgeResponse",
    "RestoreRequest",
    "RestoreResponse",
    "TrashItem",
    "TrashListResponse",
]
