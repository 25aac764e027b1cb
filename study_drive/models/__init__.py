"""Models module exports"""
from .database import (
    Base,
    CopyPolicy,
    CopyRequest,
    CopyRequestStatus,
    Drive,
    DriveActivity,
    DriveFile,
    DriveFolder,
    Subject,
    SubjectFile,
    new_id,
    utcnow,
)

__all__ = [
    "Base",
    "CopyPolicy",
    "CopyRequest",
    "CopyRequestStatus",
    "Drive",
    "DriveActivity",
    "DriveFile",
    "DriveFolder",
    "Subject",
    "SubjectFile",
    "new_id",
    "utcnow",
]
