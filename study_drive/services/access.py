"""
Ownership checks for drives, folders and files

Every mutating operation and every content read goes through these checks.
By default a resource owned by someone else is reported exactly like a
missing one (NotFoundError) so callers cannot discover other users' IDs;
with ``hide_foreign=False`` it raises AccessDeniedError instead.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AccessDeniedError, NotFoundError
from ..models import Drive, DriveFile, DriveFolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller, validated once at the API boundary"""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class AccessValidator:
    """Resolves a resource's owning drive and compares it with the actor"""

    def __init__(self, hide_foreign: bool = True):
        self.hide_foreign = hide_foreign

    async def _drive_owner(self, session: AsyncSession, drive_id: str) -> Optional[str]:
        return await session.scalar(select(Drive.user_id).where(Drive.id == drive_id))

    async def owns_drive(self, session: AsyncSession, actor: Actor, drive_id: str) -> bool:
        return await self._drive_owner(session, drive_id) == actor.id

    async def owns_folder(self, session: AsyncSession, actor: Actor, folder_id: str) -> bool:
        owner = await session.scalar(
            select(Drive.user_id)
            .join(DriveFolder, DriveFolder.drive_id == Drive.id)
            .where(DriveFolder.id == folder_id)
        )
        return owner == actor.id

    async def owns_file(self, session: AsyncSession, actor: Actor, file_id: str) -> bool:
        owner = await session.scalar(
            select(Drive.user_id)
            .join(DriveFile, DriveFile.drive_id == Drive.id)
            .where(DriveFile.id == file_id)
        )
        return owner == actor.id

    def _deny(self, actor: Actor, resource: str, resource_id: str):
        logger.warning(f"🚫 Actor {actor.id} denied access to {resource} {resource_id}")
        if self.hide_foreign:
            return NotFoundError(resource, resource_id)
        return AccessDeniedError(resource, resource_id)

    async def require_drive(self, session: AsyncSession, actor: Actor, drive_id: str) -> Drive:
        drive = await session.get(Drive, drive_id, populate_existing=True)
        if drive is None:
            raise NotFoundError("drive", drive_id)
        if drive.user_id != actor.id:
            raise self._deny(actor, "drive", drive_id)
        return drive

    async def require_folder(
        self,
        session: AsyncSession,
        actor: Actor,
        folder_id: str,
        live: bool = True
    ) -> DriveFolder:
        """
        Load a folder the actor owns.

        Args:
            live: when True a trashed folder counts as not found; when False
                  only the trash accepts it (restore/purge), and a live folder
                  is also accepted
        """
        row = (await session.execute(
            select(DriveFolder, Drive.user_id)
            .join(Drive, Drive.id == DriveFolder.drive_id)
            .where(DriveFolder.id == folder_id)
            .execution_options(populate_existing=True)
        )).one_or_none()
        if row is None:
            raise NotFoundError("folder", folder_id)
        folder, owner = row
        if owner != actor.id:
            raise self._deny(actor, "folder", folder_id)
        if live and folder.deleted_at is not None:
            raise NotFoundError("folder", folder_id)
        return folder

    async def require_file(
        self,
        session: AsyncSession,
        actor: Actor,
        file_id: str,
        live: bool = True
    ) -> DriveFile:
        row = (await session.execute(
            select(DriveFile, Drive.user_id)
            .join(Drive, Drive.id == DriveFile.drive_id)
            .where(DriveFile.id == file_id)
            .execution_options(populate_existing=True)
        )).one_or_none()
        if row is None:
            raise NotFoundError("file", file_id)
        file_record, owner = row
        if owner != actor.id:
            raise self._deny(actor, "file", file_id)
        if live and file_record.deleted_at is not None:
            raise NotFoundError("file", file_id)
        return file_record
