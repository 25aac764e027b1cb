"""Services module exports"""
from .access import AccessValidator, Actor
from .activity import ActivityAction, ActivityLogger, ActivityPage
from .copy_requests import CopyRequestOutcome, CopyRequestService
from .drives import DriveService
from .hashing import compute_hash, compute_hash_streaming, hash_blob, hash_file
from .hierarchy import (
    BulkFailure,
    BulkOperation,
    BulkResult,
    CopyResult,
    DuplicatePolicy,
    HierarchyManager,
    Page,
    PurgeResult,
    SearchResults,
    TrashListing,
    UploadResult,
)
from .quota import BandwidthStatus, QuotaAccountant, QuotaKind
from .rate_limiter import RATE_LIMITS, RateLimiter, RateLimitResult, RateLimitRule
from .storage import BlobStore, LocalBlobStore, MinioBlobStore, create_blob_store
from .subject_sync import (
    DatabaseSubjectSource,
    MaterialFileRef,
    SubjectMaterial,
    SubjectSource,
    SubjectSyncService,
    SyncFailure,
    SyncResult,
)

__all__ = [
    "AccessValidator",
    "Actor",
    "ActivityAction",
    "ActivityLogger",
    "ActivityPage",
    "DriveService",
    "compute_hash",
    "compute_hash_streaming",
    "hash_blob",
    "hash_file",
    "CopyRequestOutcome",
    "CopyRequestService",
    "BulkFailure",
    "BulkOperation",
    "BulkResult",
    "CopyResult",
    "DuplicatePolicy",
    "HierarchyManager",
    "Page",
    "PurgeResult",
    "SearchResults",
    "TrashListing",
    "UploadResult",
    "BandwidthStatus",
    "QuotaAccountant",
    "QuotaKind",
    "RATE_LIMITS",
    "RateLimiter",
    "RateLimitResult",
    "RateLimitRule",
    "BlobStore",
    "LocalBlobStore",
    "MinioBlobStore",
    "create_blob_store",
    "DatabaseSubjectSource",
    "MaterialFileRef",
    "SubjectMaterial",
    "SubjectSource",
    "SubjectSyncService",
    "SyncFailure",
    "SyncResult",
]
