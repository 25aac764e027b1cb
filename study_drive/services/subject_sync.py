"""
Mirror course subjects into the owner's drive

Each subject gets one folder named "Subjects - <title>" at the drive root,
keyed by (drive_id, subject_id). Material files are copied in as regular
drive files tagged with ``source_ref`` so a re-run only adds what is missing.

Each file is its own transaction: one failing file is reported in
``SyncResult.failed`` and the batch carries on.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import DriveError, DuplicatePathError, IOFailureError, NotFoundError
from ..models import DriveFile, DriveFolder, Subject, SubjectFile
from .access import Actor
from .activity import ActivityAction
from .drives import DriveService
from .hierarchy import DuplicatePolicy, HierarchyManager
from .storage import BlobStore

logger = logging.getLogger(__name__)

FOLDER_PREFIX = "Subjects - "


@dataclass(frozen=True)
class MaterialFileRef:
    id: str
    name: str
    storage_key: str
    size_bytes: int
    mime_type: str = "application/octet-stream"


@dataclass
class SubjectMaterial:
    id: str
    title: str
    content: Optional[str] = None
    file_refs: list[MaterialFileRef] = field(default_factory=list)


class SubjectSource(Protocol):
    """Where subject metadata and material bytes come from"""

    async def get_subject(self, session: AsyncSession, user_id: str,
                          subject_id: str) -> Optional[SubjectMaterial]:
        ...

    async def read_file(self, ref: MaterialFileRef) -> bytes:
        ...


class DatabaseSubjectSource:
    """Reads the course subsystem's subject tables and its blobs"""

    def __init__(self, store: BlobStore):
        self.store = store

    async def get_subject(self, session: AsyncSession, user_id: str,
                          subject_id: str) -> Optional[SubjectMaterial]:
        subject = await session.scalar(
            select(Subject).where(Subject.id == subject_id, Subject.user_id == user_id)
        )
        if subject is None:
            return None

        result = await session.execute(
            select(SubjectFile)
            .where(SubjectFile.subject_id == subject_id)
            .order_by(SubjectFile.created_at)
        )
        refs = [
            MaterialFileRef(
                id=f.id,
                name=f.original_name,
                storage_key=f.storage_key,
                size_bytes=f.size_bytes,
                mime_type=f.mime_type,
            )
            for f in result.scalars().all()
        ]
        return SubjectMaterial(id=subject.id, title=subject.name, content=subject.content, file_refs=refs)

    async def read_file(self, ref: MaterialFileRef) -> bytes:
        return await self.store.get(ref.storage_key)


@dataclass
class SyncFailure:
    ref_id: str
    name: str
    code: str
    message: str


@dataclass
class SyncResult:
    synced: int
    total: int
    folder_id: Optional[str] = None
    failed: list[SyncFailure] = field(default_factory=list)


def folder_name_for(title: str) -> str:
    return f"{FOLDER_PREFIX}{title}"


class SubjectSyncService:
    """Keeps subject mirror folders in step with the course subsystem"""

    def __init__(self, hierarchy: HierarchyManager, drives: DriveService, source: SubjectSource):
        self.hierarchy = hierarchy
        self.drives = drives
        self.source = source

    async def _mirror_folder(self, session: AsyncSession, drive_id: str,
                             subject_id: str) -> Optional[DriveFolder]:
        return await session.scalar(
            select(DriveFolder).where(
                DriveFolder.drive_id == drive_id,
                DriveFolder.subject_id == subject_id,
                DriveFolder.deleted_at.is_(None),
            )
        )

    async def _trashed_mirror_folder(self, session: AsyncSession, drive_id: str,
                                     subject_id: str) -> Optional[DriveFolder]:
        return await session.scalar(
            select(DriveFolder)
            .where(
                DriveFolder.drive_id == drive_id,
                DriveFolder.subject_id == subject_id,
                DriveFolder.deleted_at.is_not(None),
            )
            .order_by(DriveFolder.deleted_at.desc())
            .limit(1)
        )

    async def ensure_subject_folder(self, session: AsyncSession, actor: Actor,
                                    subject_id: str, title: str) -> DriveFolder:
        """
        Return the live mirror folder, bringing it back if needed.

        A trashed mirror is restored (with the files trashed together with it)
        and renamed to the current title rather than replaced by an empty
        folder. Only a subject that never had a mirror, or whose mirror was
        purged, gets a new folder at the drive root.
        """
        drive = await self.drives.get_or_create_drive(session, actor)
        drive_id = drive.id
        folder = await self._mirror_folder(session, drive_id, subject_id)
        if folder is not None:
            return folder

        name = folder_name_for(title)
        trashed = await self._trashed_mirror_folder(session, drive_id, subject_id)
        if trashed is not None:
            folder = await self.hierarchy.restore_folder(session, actor, trashed.id)
            if folder.name != name:
                folder = await self.hierarchy.rename_folder(session, actor, folder.id, name)
            logger.info(f"♻️ Restored mirror folder {folder.path} for subject {subject_id}")
            return folder

        try:
            folder = await self.hierarchy.create_folder(
                session, actor, drive_id, name, subject_id=subject_id
            )
        except DuplicatePathError:
            # A concurrent sync may have created the mirror first
            folder = await self._mirror_folder(session, drive_id, subject_id)
            if folder is None:
                raise
            logger.info(f"🔁 Mirror folder for subject {subject_id} created concurrently, reusing {folder.path}")
            return folder

        logger.info(f"📚 Created mirror folder {folder.path} for subject {subject_id}")
        return folder

    async def rename_subject_folder(self, session: AsyncSession, actor: Actor,
                                    subject_id: str, title: str) -> Optional[DriveFolder]:
        drive = await self.drives.get_or_create_drive(session, actor)
        folder = await self._mirror_folder(session, drive.id, subject_id)
        if folder is None:
            return None
        return await self.hierarchy.rename_folder(session, actor, folder.id, folder_name_for(title))

    async def trash_subject_folder(self, session: AsyncSession, actor: Actor,
                                   subject_id: str) -> Optional[DriveFolder]:
        drive = await self.drives.get_or_create_drive(session, actor)
        folder = await self._mirror_folder(session, drive.id, subject_id)
        if folder is None:
            return None
        return await self.hierarchy.soft_delete_folder(session, actor, folder.id)

    async def sync_subject_to_drive(self, session: AsyncSession, actor: Actor,
                                    subject_id: str) -> SyncResult:
        """
        Copy every material file that has no mirrored drive file yet.

        A file counts as mirrored while any row with its ``source_ref``
        exists, live or trashed; purging the row lets the next sync bring it
        back. Running twice without changes syncs nothing the second time.

        Raises:
            NotFoundError: the subject does not exist or belongs to someone else
        """
        material = await self.source.get_subject(session, actor.id, subject_id)
        if material is None:
            raise NotFoundError("subject", subject_id)

        folder = await self.ensure_subject_folder(session, actor, subject_id, material.title)
        # Plain values: a failed file rolls back the session and expires loaded rows
        drive_id, folder_id, folder_name = folder.drive_id, folder.id, folder.name

        ref_ids = [ref.id for ref in material.file_refs]
        mirrored: set[str] = set()
        if ref_ids:
            result = await session.execute(
                select(DriveFile.source_ref).where(
                    DriveFile.drive_id == drive_id,
                    DriveFile.source_ref.in_(ref_ids),
                )
            )
            mirrored = set(result.scalars().all())

        sync = SyncResult(synced=0, total=len(material.file_refs), folder_id=folder_id)
        for ref in material.file_refs:
            if ref.id in mirrored:
                continue
            try:
                content = await self.source.read_file(ref)
                await self.hierarchy.create_file(
                    session, actor, drive_id, ref.name, content,
                    mime_type=ref.mime_type,
                    folder_id=folder_id,
                    policy=DuplicatePolicy.ALLOW,
                    source_ref=ref.id,
                )
                sync.synced += 1
            except DriveError as e:
                logger.error(f"❌ Failed to sync {ref.name} from subject {subject_id}: {e.message}")
                sync.failed.append(SyncFailure(ref_id=ref.id, name=ref.name, code=e.code, message=e.message))
            except OSError as e:
                # Sources backed by files or sockets may raise raw I/O errors
                logger.error(f"❌ Could not read {ref.name} from subject {subject_id}: {e}")
                sync.failed.append(SyncFailure(ref_id=ref.id, name=ref.name, code=IOFailureError.code, message=str(e)))

        await self.hierarchy.activity.record_now(
            session, drive_id, actor.id, ActivityAction.SYNC, "folder", folder_name, folder_id,
            {"subject_id": subject_id, "synced": sync.synced, "total": sync.total, "failed": len(sync.failed)}
        )
        logger.info(f"✅ Synced subject {subject_id}: {sync.synced}/{sync.total} new, {len(sync.failed)} failed")
        return sync
