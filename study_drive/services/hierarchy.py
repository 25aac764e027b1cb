"""
Folder/file hierarchy management with trash, dedup and quota accounting

Folder paths are materialized for lookup and uniqueness, but the parent
pointer is the source of truth: every rename, move and restore recomputes
the affected paths from the parent chain inside one transaction. Live path
uniqueness is guaranteed by the partial unique index on (drive_id, path), so
a concurrent insert that slips past the pre-check still fails cleanly.

Upload flow:
1. Validate target folder, name and size
2. Hash content once (SHA-256), apply the duplicate policy
3. Write the blob (atomic per backend)
4. One transaction: charge storage quota + insert row + activity entry
5. If the transaction fails, delete the blob just written
"""
import enum
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Iterable, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import (
    DriveError,
    DuplicateContentError,
    DuplicatePathError,
    FileTooLargeError,
    IOFailureError,
    InvalidMoveError,
    NotFoundError,
    PathConflictError,
)
from ..models import Drive, DriveFile, DriveFolder, new_id, utcnow
from .access import AccessValidator, Actor
from .activity import ActivityAction, ActivityLogger
from .hashing import compute_hash
from .paths import copy_name_for, file_type_for, join_path, validate_name
from .quota import QuotaAccountant, QuotaKind
from .storage import BlobStore

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
SEARCH_LIMIT = 50
MAX_BULK_ITEMS = 100


class DuplicatePolicy(str, enum.Enum):
    """What to do when an upload matches a live file's content in the same drive"""
    ALLOW = "allow"     # store anyway, report duplicate_of
    REUSE = "reuse"     # return the existing file, write nothing
    REJECT = "reject"   # DuplicateContentError


class BulkOperation(str, enum.Enum):
    DELETE = "delete"
    MOVE = "move"
    RESTORE = "restore"
    COPY = "copy"


@dataclass
class UploadResult:
    file: DriveFile
    reused: bool = False
    duplicate_of: Optional[str] = None


@dataclass
class PurgeResult:
    folders: int = 0
    files: int = 0
    bytes_released: int = 0
    blob_failures: int = 0


@dataclass
class Page:
    items: list
    total: int
    page: int
    limit: int


@dataclass
class TrashListing:
    folders: list[DriveFolder] = field(default_factory=list)
    files: list[DriveFile] = field(default_factory=list)


@dataclass
class SearchResults:
    folders: list[DriveFolder] = field(default_factory=list)
    files: list[DriveFile] = field(default_factory=list)


@dataclass
class CopyResult:
    folder: Optional[DriveFolder]  # None when a single file was copied
    files: list[DriveFile]
    bytes_charged: int


@dataclass
class BulkFailure:
    id: str
    code: str
    message: str


@dataclass
class BulkResult:
    operation: BulkOperation
    succeeded: list[str] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


def _blob_key(drive_id: str, name: str) -> str:
    """Globally unique blob key; keeps the extension for readable object listings"""
    extension = name.rpartition(".")[2].lower() if "." in name else ""
    return f"drives/{drive_id}/{new_id()}" + (f".{extension}" if extension else "")


def _children_index(folders: Iterable[DriveFolder]) -> dict[str, list[DriveFolder]]:
    children: dict[str, list[DriveFolder]] = defaultdict(list)
    for folder in folders:
        if folder.parent_id is not None:
            children[folder.parent_id].append(folder)
    return children


def _walk(root: DriveFolder, children: dict[str, list[DriveFolder]],
          include: Callable[[DriveFolder], bool] = lambda f: True) -> list[DriveFolder]:
    """Breadth-first subtree (root first); ``include`` prunes whole branches"""
    nodes = [root]
    queue = deque([root])
    while queue:
        node = queue.popleft()
        for child in children.get(node.id, []):
            if include(child):
                nodes.append(child)
                queue.append(child)
    return nodes


def _plan_paths(root: DriveFolder, root_name: str, parent_path: Optional[str],
                children: dict[str, list[DriveFolder]],
                members: set[str]) -> dict[str, str]:
    """New path for every folder of the subtree rooted at ``root`` restricted to ``members``"""
    plan = {root.id: join_path(parent_path, root_name)}
    queue = deque([root])
    while queue:
        node = queue.popleft()
        for child in children.get(node.id, []):
            if child.id in members:
                plan[child.id] = join_path(plan[node.id], child.name)
                queue.append(child)
    return plan


class HierarchyManager:
    """Business logic for folders, files and the trash"""

    def __init__(
        self,
        store: BlobStore,
        quota: QuotaAccountant,
        activity: ActivityLogger,
        access: AccessValidator,
        max_file_size: int,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.ALLOW,
        trash_retention_days: int = 30,
        now: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.quota = quota
        self.activity = activity
        self.access = access
        self.max_file_size = max_file_size
        self.duplicate_policy = DuplicatePolicy(duplicate_policy)
        self.trash_retention_days = trash_retention_days
        self._now = now

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    async def _drive_folders(self, session: AsyncSession, drive_id: str,
                             live_only: bool = False) -> list[DriveFolder]:
        stmt = select(DriveFolder).where(DriveFolder.drive_id == drive_id)
        if live_only:
            stmt = stmt.where(DriveFolder.deleted_at.is_(None))
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def _folder_files(self, session: AsyncSession, folder_ids: list[str],
                            *conditions) -> list[DriveFile]:
        result = await session.execute(
            select(DriveFile)
            .where(DriveFile.folder_id.in_(folder_ids), *conditions)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _path_taken(self, session: AsyncSession, drive_id: str, paths: Iterable[str],
                          exclude: Iterable[str] = ()) -> Optional[str]:
        """First of ``paths`` already held by a live folder outside ``exclude``"""
        paths = list(paths)
        if not paths:
            return None
        stmt = select(DriveFolder.path).where(
            DriveFolder.drive_id == drive_id,
            DriveFolder.deleted_at.is_(None),
            DriveFolder.path.in_(paths),
        )
        exclude = list(exclude)
        if exclude:
            stmt = stmt.where(DriveFolder.id.not_in(exclude))
        return await session.scalar(stmt.limit(1))

    async def _parent_path(self, session: AsyncSession, actor: Actor, drive_id: str,
                           parent_id: Optional[str]) -> Optional[str]:
        if parent_id is None:
            return None
        parent = await self.access.require_folder(session, actor, parent_id)
        if parent.drive_id != drive_id:
            raise NotFoundError("folder", parent_id)
        return parent.path

    async def _commit_paths(self, session: AsyncSession, path: str,
                            error: Callable[[str], Exception] = DuplicatePathError) -> None:
        """Commit a path-changing transaction, mapping unique index violations"""
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            logger.warning(f"⚠️ Path collision on commit at {path}: {e.orig}")
            raise error(path) from e
        except Exception:
            await session.rollback()
            raise

    async def _delete_blobs(self, keys: Iterable[str]) -> int:
        """Delete blobs after their rows are gone; failures are logged and counted"""
        failures = 0
        for key in keys:
            try:
                await self.store.delete(key)
            except IOFailureError as e:
                failures += 1
                logger.error(f"❌ Orphaned blob {key} could not be deleted: {e.message}")
        return failures

    # ------------------------------------------------------------------
    # folders
    # ------------------------------------------------------------------

    async def create_folder(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        name: str,
        parent_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        is_public: bool = False
    ) -> DriveFolder:
        """
        Create a folder under ``parent_id`` (None = drive root).

        Raises:
            InvalidNameError: name empty/reserved after sanitizing
            NotFoundError: parent missing, trashed or foreign
            DuplicatePathError: a live folder already has the path
        """
        await self.access.require_drive(session, actor, drive_id)
        name = validate_name(name)
        parent_path = await self._parent_path(session, actor, drive_id, parent_id)
        path = join_path(parent_path, name)

        if await self._path_taken(session, drive_id, [path]):
            raise DuplicatePathError(path)

        folder = DriveFolder(
            drive_id=drive_id,
            parent_id=parent_id,
            name=name,
            path=path,
            subject_id=subject_id,
            is_public=is_public,
        )
        session.add(folder)
        try:
            await session.flush()
        except IntegrityError as e:
            await session.rollback()
            raise DuplicatePathError(path) from e

        self.activity.record(session, drive_id, actor.id, ActivityAction.CREATE,
                             "folder", name, folder.id, {"path": path})
        await self._commit_paths(session, path)
        logger.info(f"📁 Created folder {path} in drive {drive_id}")
        return folder

    async def get_folder(self, session: AsyncSession, actor: Actor, folder_id: str) -> DriveFolder:
        return await self.access.require_folder(session, actor, folder_id)

    async def breadcrumbs(self, session: AsyncSession, actor: Actor, folder_id: str) -> list[DriveFolder]:
        """Ancestors from the drive root down to the folder itself"""
        folder = await self.access.require_folder(session, actor, folder_id)
        chain = [folder]
        while chain[-1].parent_id is not None:
            parent = await session.get(DriveFolder, chain[-1].parent_id)
            if parent is None:
                break
            chain.append(parent)
        return list(reversed(chain))

    async def list_folders(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        parent_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Page:
        await self.access.require_drive(session, actor, drive_id)
        if parent_id is not None:
            await self.access.require_folder(session, actor, parent_id)
        page, limit = max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [
            DriveFolder.drive_id == drive_id,
            DriveFolder.deleted_at.is_(None),
            DriveFolder.parent_id.is_(None) if parent_id is None else DriveFolder.parent_id == parent_id,
        ]
        result = await session.execute(
            select(DriveFolder).where(*conditions)
            .order_by(DriveFolder.name)
            .offset((page - 1) * limit).limit(limit)
        )
        total = await session.scalar(select(func.count()).select_from(DriveFolder).where(*conditions))
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def rename_folder(self, session: AsyncSession, actor: Actor,
                            folder_id: str, name: str) -> DriveFolder:
        """Rename a folder and recompute the paths of its live subtree"""
        folder = await self.access.require_folder(session, actor, folder_id)
        name = validate_name(name)
        if name == folder.name:
            return folder

        parent_path = folder.path.rpartition("/")[0] or None
        folders = await self._drive_folders(session, folder.drive_id, live_only=True)
        children = _children_index(folders)
        subtree = _walk(folder, children)
        plan = _plan_paths(folder, name, parent_path, children, {f.id for f in subtree})

        taken = await self._path_taken(session, folder.drive_id, plan.values(), exclude=plan.keys())
        if taken:
            raise DuplicatePathError(taken)

        old_name = folder.name
        folder.name = name
        for node in subtree:
            node.path = plan[node.id]
        self.activity.record(session, folder.drive_id, actor.id, ActivityAction.RENAME,
                             "folder", name, folder.id, {"from": old_name, "to": name})
        await self._commit_paths(session, plan[folder.id])
        logger.info(f"✏️  Renamed folder {old_name} -> {name} ({len(subtree)} paths updated)")
        return folder

    async def set_folder_public(self, session: AsyncSession, actor: Actor,
                                folder_id: str, is_public: bool) -> DriveFolder:
        folder = await self.access.require_folder(session, actor, folder_id)
        folder.is_public = is_public
        await session.commit()
        return folder

    async def move_folder(self, session: AsyncSession, actor: Actor,
                          folder_id: str, new_parent_id: Optional[str]) -> DriveFolder:
        """
        Re-parent a folder (None = drive root).

        The target's ancestor chain is walked over parent pointers; meeting
        the folder itself means the move would create a cycle.

        Raises:
            InvalidMoveError: target is the folder or one of its descendants
            DuplicatePathError: the new path is held by a live folder
        """
        folder = await self.access.require_folder(session, actor, folder_id)
        if new_parent_id == folder.parent_id:
            return folder

        parent_path = None
        if new_parent_id is not None:
            if new_parent_id == folder.id:
                raise InvalidMoveError(folder.id, new_parent_id)
            target = await self.access.require_folder(session, actor, new_parent_id)
            if target.drive_id != folder.drive_id:
                raise NotFoundError("folder", new_parent_id)

            cursor: Optional[DriveFolder] = target
            while cursor is not None:
                if cursor.id == folder.id:
                    logger.warning(f"⚠️ Rejected cyclic move of {folder.path} into {target.path}")
                    raise InvalidMoveError(folder.id, new_parent_id)
                cursor = await session.get(DriveFolder, cursor.parent_id) if cursor.parent_id else None
            parent_path = target.path

        folders = await self._drive_folders(session, folder.drive_id, live_only=True)
        children = _children_index(folders)
        subtree = _walk(folder, children)
        plan = _plan_paths(folder, folder.name, parent_path, children, {f.id for f in subtree})

        taken = await self._path_taken(session, folder.drive_id, plan.values(), exclude=plan.keys())
        if taken:
            raise DuplicatePathError(taken)

        old_path = folder.path
        folder.parent_id = new_parent_id
        for node in subtree:
            node.path = plan[node.id]
        self.activity.record(session, folder.drive_id, actor.id, ActivityAction.MOVE,
                             "folder", folder.name, folder.id,
                             {"from": old_path, "to": plan[folder.id]})
        await self._commit_paths(session, plan[folder.id])
        logger.info(f"📦 Moved folder {old_path} -> {plan[folder.id]}")
        return folder

    async def soft_delete_folder(self, session: AsyncSession, actor: Actor, folder_id: str) -> DriveFolder:
        """Move a folder, its live descendants and their live files to the trash"""
        folder = await self.access.require_folder(session, actor, folder_id)
        folders = await self._drive_folders(session, folder.drive_id, live_only=True)
        subtree = _walk(folder, _children_index(folders))
        folder_ids = [f.id for f in subtree]

        files = await self._folder_files(
            session, folder_ids, DriveFile.deleted_at.is_(None)
        )

        # One timestamp for the whole subtree so restore can find it again
        deleted_at = self._now()
        try:
            for node in subtree:
                node.deleted_at = deleted_at
            for file_record in files:
                file_record.deleted_at = deleted_at
            self.activity.record(session, folder.drive_id, actor.id, ActivityAction.DELETE,
                                 "folder", folder.name, folder.id,
                                 {"path": folder.path, "folders": len(subtree), "files": len(files)})
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"🗑️  Trashed folder {folder.path} ({len(subtree)} folders, {len(files)} files)")
        return folder

    async def restore_folder(self, session: AsyncSession, actor: Actor, folder_id: str) -> DriveFolder:
        """
        Restore a trashed folder with everything trashed together with it.

        Descendants trashed at or after the folder come back; ones trashed
        earlier on their own stay in the trash. When the parent is no longer
        live the folder is reattached at the drive root.

        Raises:
            PathConflictError: a restored path is held by a live folder;
                               nothing is restored
        """
        folder = await self.access.require_folder(session, actor, folder_id, live=False)
        if folder.deleted_at is None:
            return folder
        trashed_at = folder.deleted_at

        parent_id = folder.parent_id
        parent_path = None
        if parent_id is not None:
            parent = await session.get(DriveFolder, parent_id, populate_existing=True)
            if parent is None or parent.deleted_at is not None:
                parent_id = None
            else:
                parent_path = parent.path

        folders = await self._drive_folders(session, folder.drive_id)
        children = _children_index(folders)
        subtree = _walk(
            folder, children,
            include=lambda f: f.deleted_at is not None and f.deleted_at >= trashed_at
        )
        plan = _plan_paths(folder, folder.name, parent_path, children, {f.id for f in subtree})

        taken = await self._path_taken(session, folder.drive_id, plan.values())
        if taken:
            logger.warning(f"⚠️ Restore of {folder.name} blocked by live folder at {taken}")
            raise PathConflictError(taken)

        files = await self._folder_files(
            session, [f.id for f in subtree],
            DriveFile.deleted_at.is_not(None), DriveFile.deleted_at >= trashed_at
        )

        folder.parent_id = parent_id
        for node in subtree:
            node.path = plan[node.id]
            node.deleted_at = None
        for file_record in files:
            file_record.deleted_at = None
        self.activity.record(session, folder.drive_id, actor.id, ActivityAction.RESTORE,
                             "folder", folder.name, folder.id,
                             {"path": plan[folder.id], "folders": len(subtree), "files": len(files)})
        await self._commit_paths(session, plan[folder.id], error=PathConflictError)
        logger.info(f"♻️ Restored folder {plan[folder.id]} ({len(subtree)} folders, {len(files)} files)")
        return folder

    async def _purge(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        folder_ids: list[str],
        files: list[DriveFile],
        target_type: str,
        target_name: str,
        target_id: Optional[str] = None
    ) -> PurgeResult:
        """Delete rows and release quota in one transaction, then delete the blobs"""
        released = sum(f.size_bytes for f in files)
        keys = [f.stored_name for f in files]
        try:
            if files:
                await session.execute(
                    delete(DriveFile)
                    .where(DriveFile.id.in_([f.id for f in files]))
                    .execution_options(synchronize_session="fetch")
                )
            if folder_ids:
                await session.execute(
                    delete(DriveFolder)
                    .where(DriveFolder.id.in_(folder_ids))
                    .execution_options(synchronize_session="fetch")
                )
            await self.quota.release(session, drive_id, released)
            self.activity.record(session, drive_id, actor.id, ActivityAction.PURGE,
                                 target_type, target_name, target_id,
                                 {"folders": len(folder_ids), "files": len(files), "bytes": released})
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        failures = await self._delete_blobs(keys)
        logger.info(f"🔥 Purged {len(folder_ids)} folders, {len(files)} files, released {released} bytes")
        return PurgeResult(
            folders=len(folder_ids),
            files=len(files),
            bytes_released=released,
            blob_failures=failures
        )

    async def purge_folder(self, session: AsyncSession, actor: Actor, folder_id: str) -> PurgeResult:
        """Permanently delete a folder subtree (any state) and every file in it"""
        folder = await self.access.require_folder(session, actor, folder_id, live=False)
        folders = await self._drive_folders(session, folder.drive_id)
        folder_ids = [f.id for f in _walk(folder, _children_index(folders))]

        files = await self._folder_files(session, folder_ids)
        return await self._purge(session, actor, folder.drive_id, folder_ids, files,
                                 "folder", folder.name, folder.id)

    # ------------------------------------------------------------------
    # files
    # ------------------------------------------------------------------

    async def create_file(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        name: str,
        content: bytes,
        mime_type: str = "application/octet-stream",
        folder_id: Optional[str] = None,
        policy: Optional[DuplicatePolicy] = None,
        source_ref: Optional[str] = None
    ) -> UploadResult:
        """
        Store a new file in ``folder_id`` (None = drive root).

        Raises:
            FileTooLargeError: content exceeds the per-file limit
            DuplicateContentError: identical live content under policy "reject"
            QuotaExceededError: the drive's storage limit would be exceeded
            IOFailureError: the blob could not be written
        """
        drive = await self.access.require_drive(session, actor, drive_id)
        name = validate_name(name)
        if folder_id is not None:
            folder = await self.access.require_folder(session, actor, folder_id)
            if folder.drive_id != drive_id:
                raise NotFoundError("folder", folder_id)

        size = len(content)
        if size > self.max_file_size:
            raise FileTooLargeError(size, self.max_file_size)

        content_hash = compute_hash(content)
        policy = DuplicatePolicy(policy) if policy is not None else self.duplicate_policy

        existing = await session.scalar(
            select(DriveFile)
            .where(
                DriveFile.drive_id == drive_id,
                DriveFile.content_hash == content_hash,
                DriveFile.deleted_at.is_(None),
            )
            .order_by(DriveFile.created_at)
            .limit(1)
        )
        if existing is not None:
            if policy is DuplicatePolicy.REJECT:
                raise DuplicateContentError(content_hash, existing.id)
            if policy is DuplicatePolicy.REUSE:
                logger.info(f"♻️ Content already exists, reusing {existing.id} (hash: {content_hash[:8]})")
                return UploadResult(file=existing, reused=True, duplicate_of=existing.id)

        self.quota.check_storage(drive, size)

        stored_name = _blob_key(drive_id, name)
        await self.store.put(stored_name, content, mime_type)

        try:
            await self.quota.charge(session, drive_id, size, QuotaKind.STORAGE)
            file_record = DriveFile(
                drive_id=drive_id,
                folder_id=folder_id,
                original_name=name,
                stored_name=stored_name,
                mime_type=mime_type or "application/octet-stream",
                file_type=file_type_for(name),
                size_bytes=size,
                content_hash=content_hash,
                source_ref=source_ref,
            )
            session.add(file_record)
            await session.flush()
            self.activity.record(session, drive_id, actor.id, ActivityAction.UPLOAD,
                                 "file", name, file_record.id,
                                 {"size": size, "hash": content_hash,
                                  "duplicate_of": existing.id if existing else None})
            await session.commit()
        except Exception:
            await session.rollback()
            await self._delete_blobs([stored_name])
            raise

        logger.info(f"✅ Stored {name} ({size} bytes, hash: {content_hash[:8]}) in drive {drive_id}")
        return UploadResult(file=file_record, duplicate_of=existing.id if existing else None)

    async def get_file(self, session: AsyncSession, actor: Actor, file_id: str) -> DriveFile:
        return await self.access.require_file(session, actor, file_id)

    async def list_files(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        folder_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Page:
        await self.access.require_drive(session, actor, drive_id)
        if folder_id is not None:
            await self.access.require_folder(session, actor, folder_id)
        page, limit = max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [
            DriveFile.drive_id == drive_id,
            DriveFile.deleted_at.is_(None),
            DriveFile.folder_id.is_(None) if folder_id is None else DriveFile.folder_id == folder_id,
        ]
        result = await session.execute(
            select(DriveFile).where(*conditions)
            .order_by(DriveFile.created_at.desc())
            .offset((page - 1) * limit).limit(limit)
        )
        total = await session.scalar(select(func.count()).select_from(DriveFile).where(*conditions))
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def read_file(self, session: AsyncSession, actor: Actor,
                        file_id: str) -> Tuple[DriveFile, AsyncIterator[bytes]]:
        """
        Charge download bandwidth and open the file's content stream.

        Raises:
            QuotaExceededError: daily bandwidth would be exceeded (429)
            IOFailureError: the blob is missing
        """
        file_record = await self.access.require_file(session, actor, file_id)
        if not await self.store.exists(file_record.stored_name):
            logger.error(f"❌ Blob missing for file {file_record.id}: {file_record.stored_name}")
            raise IOFailureError("download", file_record.stored_name, "blob not found")

        try:
            await self.quota.charge(session, file_record.drive_id, file_record.size_bytes, QuotaKind.BANDWIDTH)
            self.activity.record(session, file_record.drive_id, actor.id, ActivityAction.DOWNLOAD,
                                 "file", file_record.original_name, file_record.id,
                                 {"size": file_record.size_bytes})
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(f"📥 Streaming {file_record.original_name} ({file_record.size_bytes} bytes)")
        return file_record, self.store.iter_chunks(file_record.stored_name)

    async def rename_file(self, session: AsyncSession, actor: Actor, file_id: str, name: str) -> DriveFile:
        file_record = await self.access.require_file(session, actor, file_id)
        name = validate_name(name)
        old_name = file_record.original_name
        file_record.original_name = name
        file_record.file_type = file_type_for(name)
        self.activity.record(session, file_record.drive_id, actor.id, ActivityAction.RENAME,
                             "file", name, file_record.id, {"from": old_name, "to": name})
        await session.commit()
        return file_record

    async def move_file(self, session: AsyncSession, actor: Actor,
                        file_id: str, folder_id: Optional[str]) -> DriveFile:
        file_record = await self.access.require_file(session, actor, file_id)
        if folder_id is not None:
            folder = await self.access.require_folder(session, actor, folder_id)
            if folder.drive_id != file_record.drive_id:
                raise NotFoundError("folder", folder_id)

        old_folder = file_record.folder_id
        file_record.folder_id = folder_id
        self.activity.record(session, file_record.drive_id, actor.id, ActivityAction.MOVE,
                             "file", file_record.original_name, file_record.id,
                             {"from": old_folder, "to": folder_id})
        await session.commit()
        return file_record

    async def soft_delete_file(self, session: AsyncSession, actor: Actor, file_id: str) -> DriveFile:
        file_record = await self.access.require_file(session, actor, file_id)
        file_record.deleted_at = self._now()
        self.activity.record(session, file_record.drive_id, actor.id, ActivityAction.DELETE,
                             "file", file_record.original_name, file_record.id)
        await session.commit()
        logger.info(f"🗑️  Trashed file {file_record.original_name}")
        return file_record

    async def restore_file(self, session: AsyncSession, actor: Actor, file_id: str) -> DriveFile:
        """Restore a trashed file; it lands at the drive root if its folder is not live"""
        file_record = await self.access.require_file(session, actor, file_id, live=False)
        if file_record.deleted_at is None:
            return file_record

        if file_record.folder_id is not None:
            folder = await session.get(DriveFolder, file_record.folder_id, populate_existing=True)
            if folder is None or folder.deleted_at is not None:
                file_record.folder_id = None

        file_record.deleted_at = None
        self.activity.record(session, file_record.drive_id, actor.id, ActivityAction.RESTORE,
                             "file", file_record.original_name, file_record.id,
                             {"folder_id": file_record.folder_id})
        await session.commit()
        logger.info(f"♻️ Restored file {file_record.original_name}")
        return file_record

    async def purge_file(self, session: AsyncSession, actor: Actor, file_id: str) -> PurgeResult:
        file_record = await self.access.require_file(session, actor, file_id, live=False)
        return await self._purge(session, actor, file_record.drive_id, [], [file_record],
                                 "file", file_record.original_name, file_record.id)

    # ------------------------------------------------------------------
    # copies
    # ------------------------------------------------------------------

    async def _clone(
        self,
        session: AsyncSession,
        actor_id: str,
        dest_drive_id: str,
        dest_parent_id: Optional[str],
        dest_parent_path: Optional[str],
        root: Optional[DriveFolder] = None,
        root_name: Optional[str] = None,
        source_file: Optional[DriveFile] = None,
        file_name: Optional[str] = None,
        action: ActivityAction = ActivityAction.COPY,
        keep_public: bool = True,
        metadata: Optional[dict] = None
    ) -> CopyResult:
        """
        Copy a live folder subtree (``root``) or one file into ``dest_drive_id``.

        Every copied file gets its own blob so purging either side never
        touches the other. Blobs are written first; the storage charge, the
        new rows and the activity entry then commit together, and any failure
        rolls back and deletes the blobs just written.
        """
        new_folders: list[DriveFolder] = []
        folder_ids: dict[str, str] = {}  # source folder id -> copy id
        path = None

        if root is not None:
            folders = await self._drive_folders(session, root.drive_id, live_only=True)
            children = _children_index(folders)
            subtree = _walk(root, children)
            plan = _plan_paths(root, root_name, dest_parent_path, children, {f.id for f in subtree})
            path = plan[root.id]

            taken = await self._path_taken(session, dest_drive_id, plan.values())
            if taken:
                raise DuplicatePathError(taken)

            for node in subtree:
                folder_ids[node.id] = new_id()
            for node in subtree:
                is_root = node.id == root.id
                new_folders.append(DriveFolder(
                    id=folder_ids[node.id],
                    drive_id=dest_drive_id,
                    parent_id=dest_parent_id if is_root else folder_ids[node.parent_id],
                    name=root_name if is_root else node.name,
                    path=plan[node.id],
                    is_public=keep_public and node.is_public,
                ))
            sources = await self._folder_files(session, list(folder_ids), DriveFile.deleted_at.is_(None))
        else:
            sources = [source_file]

        total = sum(f.size_bytes for f in sources)
        dest_drive = await session.get(Drive, dest_drive_id, populate_existing=True)
        self.quota.check_storage(dest_drive, total)

        keys: list[str] = []
        copies: list[DriveFile] = []
        try:
            for source in sources:
                name = file_name if root is None and file_name else source.original_name
                key = _blob_key(dest_drive_id, name)
                await self.store.copy(source.stored_name, key)
                keys.append(key)
                copies.append(DriveFile(
                    drive_id=dest_drive_id,
                    folder_id=folder_ids[source.folder_id] if root is not None else dest_parent_id,
                    original_name=name,
                    stored_name=key,
                    mime_type=source.mime_type,
                    file_type=file_type_for(name),
                    size_bytes=source.size_bytes,
                    content_hash=source.content_hash,
                ))

            if total:
                await self.quota.charge(session, dest_drive_id, total, QuotaKind.STORAGE)
            # Parents before children, folders before their files
            for node in new_folders:
                session.add(node)
                await session.flush()
            session.add_all(copies)
            await session.flush()

            if root is not None:
                target_type, target = "folder", new_folders[0]
                target_name = target.name
            else:
                target_type, target = "file", copies[0]
                target_name = target.original_name
            details = {"files": len(copies), "folders": len(new_folders), "bytes": total}
            details.update(metadata or {})
            self.activity.record(session, dest_drive_id, actor_id, action,
                                 target_type, target_name, target.id, details)
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            await self._delete_blobs(keys)
            logger.warning(f"⚠️ Path collision while copying to {path}: {e.orig}")
            raise DuplicatePathError(path or "/") from e
        except Exception:
            await session.rollback()
            await self._delete_blobs(keys)
            raise

        return CopyResult(
            folder=new_folders[0] if new_folders else None,
            files=copies,
            bytes_charged=total
        )

    async def copy_folder(
        self,
        session: AsyncSession,
        actor: Actor,
        folder_id: str,
        target_parent_id: Optional[str] = None,
        name: Optional[str] = None
    ) -> CopyResult:
        """
        Copy a folder with its live subtree under ``target_parent_id`` (None = drive root).

        The copy is named ``name`` or "<name> (Copy)"; subject links are not
        copied. Storage is charged for every copied byte.

        Raises:
            NotFoundError: source or target missing, trashed or foreign
            DuplicatePathError: a live folder already has one of the new paths
            QuotaExceededError: the copy does not fit in the drive
        """
        source = await self.access.require_folder(session, actor, folder_id)
        parent_path = await self._parent_path(session, actor, source.drive_id, target_parent_id)
        name = validate_name(name or copy_name_for(source.name))

        result = await self._clone(
            session, actor.id, source.drive_id, target_parent_id, parent_path,
            root=source, root_name=name, metadata={"source_id": source.id}
        )
        logger.info(f"📋 Copied folder {source.path} -> {result.folder.path} "
                    f"({len(result.files)} files, {result.bytes_charged} bytes)")
        return result

    async def copy_file(
        self,
        session: AsyncSession,
        actor: Actor,
        file_id: str,
        folder_id: Optional[str] = None,
        name: Optional[str] = None
    ) -> CopyResult:
        """Copy a live file into ``folder_id`` (None = drive root) as "<stem> (Copy).<ext>" by default"""
        source = await self.access.require_file(session, actor, file_id)
        if folder_id is not None:
            folder = await self.access.require_folder(session, actor, folder_id)
            if folder.drive_id != source.drive_id:
                raise NotFoundError("folder", folder_id)
        name = validate_name(name or copy_name_for(source.original_name, keep_extension=True))

        result = await self._clone(
            session, actor.id, source.drive_id, folder_id, None,
            source_file=source, file_name=name, metadata={"source_id": source.id}
        )
        logger.info(f"📋 Copied file {source.original_name} -> {name}")
        return result

    async def copy_to_drive(
        self,
        session: AsyncSession,
        actor_id: str,
        item_type: str,
        item_id: str,
        source_drive_id: str,
        dest_drive_id: str
    ) -> CopyResult:
        """
        Copy a live item of one drive to the root of another drive.

        Callers decide whether the copy is allowed; copies are always private
        and the destination drive pays the storage.

        Raises:
            NotFoundError: the item is not a live row of ``source_drive_id``
        """
        model = DriveFolder if item_type == "folder" else DriveFile
        source = await session.scalar(
            select(model)
            .where(model.id == item_id, model.drive_id == source_drive_id, model.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        )
        if source is None:
            raise NotFoundError(item_type, item_id)

        details = {"source_id": source.id, "source_drive_id": source_drive_id}
        if item_type == "folder":
            result = await self._clone(
                session, actor_id, dest_drive_id, None, None,
                root=source, root_name=source.name,
                action=ActivityAction.IMPORT, keep_public=False, metadata=details
            )
        else:
            result = await self._clone(
                session, actor_id, dest_drive_id, None, None,
                source_file=source, file_name=source.original_name,
                action=ActivityAction.IMPORT, keep_public=False, metadata=details
            )
        logger.info(f"📥 Imported {item_type} {item_id} from drive {source_drive_id} into {dest_drive_id}")
        return result

    # ------------------------------------------------------------------
    # bulk
    # ------------------------------------------------------------------

    async def bulk(
        self,
        session: AsyncSession,
        actor: Actor,
        operation: BulkOperation,
        item_type: str,
        item_ids: list[str],
        target_folder_id: Optional[str] = None
    ) -> BulkResult:
        """
        Apply one operation to many files or folders.

        Each item runs as its own transaction through the single-item
        operation; failures are collected per item and do not stop the batch.
        ``target_folder_id`` is the destination for move and copy
        (None = drive root).
        """
        operation = BulkOperation(operation)
        if item_type not in ("file", "folder"):
            raise ValueError(f"Unknown item type: {item_type}")
        if len(item_ids) > MAX_BULK_ITEMS:
            raise ValueError(f"At most {MAX_BULK_ITEMS} items per bulk request")

        if item_type == "file":
            handlers = {
                BulkOperation.DELETE: lambda i: self.soft_delete_file(session, actor, i),
                BulkOperation.MOVE: lambda i: self.move_file(session, actor, i, target_folder_id),
                BulkOperation.RESTORE: lambda i: self.restore_file(session, actor, i),
                BulkOperation.COPY: lambda i: self.copy_file(session, actor, i, target_folder_id),
            }
        else:
            handlers = {
                BulkOperation.DELETE: lambda i: self.soft_delete_folder(session, actor, i),
                BulkOperation.MOVE: lambda i: self.move_folder(session, actor, i, target_folder_id),
                BulkOperation.RESTORE: lambda i: self.restore_folder(session, actor, i),
                BulkOperation.COPY: lambda i: self.copy_folder(session, actor, i, target_folder_id),
            }
        handler = handlers[operation]

        result = BulkResult(operation=operation)
        for item_id in dict.fromkeys(item_ids):
            try:
                await handler(item_id)
                result.succeeded.append(item_id)
            except DriveError as e:
                await session.rollback()
                logger.warning(f"⚠️ Bulk {operation.value} failed for {item_type} {item_id}: {e.code}")
                result.failed.append(BulkFailure(id=item_id, code=e.code, message=e.message))

        logger.info(f"📦 Bulk {operation.value} on {len(result.succeeded)} {item_type}s, "
                    f"{len(result.failed)} failed")
        return result

    # ------------------------------------------------------------------
    # trash and search
    # ------------------------------------------------------------------

    async def list_trash(self, session: AsyncSession, actor: Actor, drive_id: str) -> TrashListing:
        """Trashed folders and files, most recently deleted first"""
        await self.access.require_drive(session, actor, drive_id)
        folders = await session.execute(
            select(DriveFolder)
            .where(DriveFolder.drive_id == drive_id, DriveFolder.deleted_at.is_not(None))
            .order_by(DriveFolder.deleted_at.desc())
        )
        files = await session.execute(
            select(DriveFile)
            .where(DriveFile.drive_id == drive_id, DriveFile.deleted_at.is_not(None))
            .order_by(DriveFile.deleted_at.desc())
        )
        return TrashListing(folders=list(folders.scalars().all()), files=list(files.scalars().all()))

    async def purge_expired_trash(self, session: AsyncSession, actor: Actor, drive_id: str,
                                  retention_days: Optional[int] = None) -> PurgeResult:
        """Permanently delete everything trashed longer than the retention period"""
        await self.access.require_drive(session, actor, drive_id)
        days = self.trash_retention_days if retention_days is None else retention_days
        cutoff = self._now() - timedelta(days=days)

        folders = await self._drive_folders(session, drive_id)
        children = _children_index(folders)
        folder_ids: set[str] = set()
        for folder in folders:
            if folder.deleted_at is not None and folder.deleted_at < cutoff and folder.id not in folder_ids:
                folder_ids.update(f.id for f in _walk(folder, children))

        conditions = [and_(DriveFile.deleted_at.is_not(None), DriveFile.deleted_at < cutoff)]
        if folder_ids:
            conditions.append(DriveFile.folder_id.in_(folder_ids))
        result = await session.execute(
            select(DriveFile).where(DriveFile.drive_id == drive_id, or_(*conditions))
        )
        files = list(result.scalars().all())

        if not folder_ids and not files:
            return PurgeResult()
        logger.info(f"⏳ Purging trash older than {days} days in drive {drive_id}")
        return await self._purge(session, actor, drive_id, sorted(folder_ids), files,
                                 "trash", f"items older than {days} days")

    async def search(
        self,
        session: AsyncSession,
        actor: Actor,
        drive_id: str,
        query: str,
        kind: str = "all",
        file_type: Optional[str] = None,
        limit: int = SEARCH_LIMIT
    ) -> SearchResults:
        """Case-insensitive substring search over live folder and file names"""
        await self.access.require_drive(session, actor, drive_id)
        needle = (query or "").strip().lower()
        limit = min(max(limit, 1), SEARCH_LIMIT)
        results = SearchResults()

        if kind in ("all", "folder"):
            found = await session.execute(
                select(DriveFolder)
                .where(
                    DriveFolder.drive_id == drive_id,
                    DriveFolder.deleted_at.is_(None),
                    func.lower(DriveFolder.name).contains(needle, autoescape=True),
                )
                .order_by(DriveFolder.updated_at.desc())
                .limit(limit)
            )
            results.folders = list(found.scalars().all())

        if kind in ("all", "file"):
            stmt = select(DriveFile).where(
                DriveFile.drive_id == drive_id,
                DriveFile.deleted_at.is_(None),
                func.lower(DriveFile.original_name).contains(needle, autoescape=True),
            )
            if file_type:
                stmt = stmt.where(DriveFile.file_type == file_type.upper())
            found = await session.execute(stmt.order_by(DriveFile.updated_at.desc()).limit(limit))
            results.files = list(found.scalars().all())

        return results
