"""
Database models for the per-user drive hierarchy

Uses UUID for distributed ID generation (no auto-increment hotspots).
Folders carry a materialized ``path`` derived from their parent chain; the
parent pointer is the source of truth and the path is recomputed whenever
the chain changes. Soft-deleted rows keep ``deleted_at`` set until purged.
"""
import enum
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates


def utcnow() -> datetime:
    """Naive UTC timestamp (all columns store UTC without tzinfo)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


class CopyPolicy(str, enum.Enum):
    """Whether other users may copy content out of a drive"""
    REQUEST = "REQUEST"
    ALLOW = "ALLOW"
    DENY = "DENY"


class CopyRequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DENIED = "DENIED"


class Drive(Base):
    """
    One drive per user (the storage tenant).

    Quota counters live on this row so a single conditional UPDATE can check
    and charge usage atomically.
    """
    __tablename__ = "drives"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True, index=True)

    storage_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    storage_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bandwidth_used: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    bandwidth_limit: Mapped[int] = mapped_column(BigInteger, nullable=False)
    bandwidth_reset_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    is_private: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    copy_policy: Mapped[CopyPolicy] = mapped_column(
        Enum(CopyPolicy, name="copy_policy"),
        default=CopyPolicy.REQUEST,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Drive id={self.id} user={self.user_id} storage={self.storage_used}/{self.storage_limit}>"


class DriveFolder(Base):
    """
    Folder node in a drive.

    Example hierarchy:
      "/Notes"            (parent_id=NULL)
      "/Notes/Physics"    (parent_id=<Notes>)
    """
    __tablename__ = "drive_folders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    drive_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("drives.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("drive_folders.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)

    # Set for folders that mirror a course subject
    subject_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    __table_args__ = (
        # No two live folders in a drive share a path
        Index(
            "uq_folder_live_path",
            "drive_id",
            "path",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        # One live mirror folder per subject
        Index(
            "uq_folder_live_subject",
            "drive_id",
            "subject_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL AND subject_id IS NOT NULL"),
            sqlite_where=text("deleted_at IS NULL AND subject_id IS NOT NULL"),
        ),
        Index("idx_folder_parent", "drive_id", "parent_id"),
    )

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None

    def __repr__(self):
        state = "live" if self.is_live else "trashed"
        return f"<DriveFolder id={self.id} path={self.path} {state}>"


class DriveFile(Base):
    """File metadata; the bytes live in the blob store under ``stored_name``"""
    __tablename__ = "drive_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    drive_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("drives.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    folder_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("drive_folders.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )

    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    stored_name: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    mime_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream", nullable=False)
    file_type: Mapped[str] = mapped_column(String(32), default="FILE", nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # External material file this row mirrors (subject sync)
    source_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True, index=True)

    __table_args__ = (
        Index("idx_file_drive_hash", "drive_id", "content_hash"),
        Index("idx_file_folder", "drive_id", "folder_id"),
    )

    @validates("content_hash")
    def _freeze_content_hash(self, key: str, value: str) -> str:
        current = self.__dict__.get("content_hash")
        if current is not None and current != value:
            raise ValueError("content_hash is immutable once set")
        return value

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None

    def __repr__(self):
        return f"<DriveFile id={self.id} name={self.original_name} hash={self.content_hash[:8]}>"


class DriveActivity(Base):
    """Append-only activity log entry"""
    __tablename__ = "drive_activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    drive_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("drives.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    actor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    target_type: Mapped[str] = mapped_column(String(16), nullable=False)
    target_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    target_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # "metadata" is reserved on declarative classes
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_activity_drive_created", "drive_id", "created_at"),
    )

    def __repr__(self):
        return f"<DriveActivity {self.action} {self.target_type}:{self.target_name}>"


class Subject(Base):
    """Course subject (owned by the course subsystem, read-only here)"""
    __tablename__ = "subjects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class SubjectFile(Base):
    """Material file attached to a subject"""
    __tablename__ = "subject_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    subject_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), default="application/octet-stream", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class CopyRequest(Base):
    """
    Request from one user to copy a file or folder out of another user's drive.

    The owner approves or denies it; the requester may cancel while pending.
    """
    __tablename__ = "drive_copy_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    from_user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    to_user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    from_drive_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("drives.id", ondelete="CASCADE"),
        nullable=False
    )
    to_drive_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("drives.id", ondelete="CASCADE"),
        nullable=False
    )
    item_type: Mapped[str] = mapped_column(String(16), nullable=False)  # "file" or "folder"
    target_id: Mapped[str] = mapped_column(String(36), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[CopyRequestStatus] = mapped_column(
        Enum(CopyRequestStatus, name="copy_request_status"),
        default=CopyRequestStatus.PENDING,
        nullable=False,
        index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<CopyRequest {self.item_type}:{self.target_id} {self.from_user_id}->{self.to_user_id} {self.status}>"
