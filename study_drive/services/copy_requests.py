"""
Copy requests: copying content out of another user's drive

The owner's ``copy_policy`` decides what happens to a request:
- DENY: refused with CopyNotAllowedError, nothing is stored
- ALLOW: approved on the spot and the item is copied immediately
- REQUEST: stored as PENDING until the owner approves or denies it

Approved copies land at the requester's drive root as private items and are
charged to the requester's storage quota.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import (
    AccessDeniedError,
    CopyNotAllowedError,
    DuplicateRequestError,
    InvalidRequestStateError,
    NotFoundError,
)
from ..models import CopyPolicy, CopyRequest, CopyRequestStatus, DriveFile, DriveFolder
from .access import Actor
from .drives import DriveService
from .hierarchy import MAX_PAGE_SIZE, CopyResult, HierarchyManager, Page

logger = logging.getLogger(__name__)

ITEM_TYPES = ("file", "folder")
DIRECTIONS = ("all", "sent", "received")


@dataclass
class CopyRequestOutcome:
    request: CopyRequest
    copy: Optional[CopyResult] = None  # set when the copy was performed


class CopyRequestService:
    """Creates copy requests and carries out the approved ones"""

    def __init__(self, hierarchy: HierarchyManager, drives: DriveService):
        self.hierarchy = hierarchy
        self.drives = drives

    async def _load(self, session: AsyncSession, actor: Actor, request_id: str) -> CopyRequest:
        request = await session.get(CopyRequest, request_id, populate_existing=True)
        # Requests between other users are reported as missing
        if request is None or actor.id not in (request.from_user_id, request.to_user_id):
            raise NotFoundError("copy_request", request_id)
        return request

    async def _perform(self, session: AsyncSession, request: CopyRequest) -> CopyResult:
        """Copy the requested item; the status change commits together with the copy"""
        request_id = request.id
        request.status = CopyRequestStatus.APPROVED
        try:
            return await self.hierarchy.copy_to_drive(
                session, request.from_user_id, request.item_type, request.target_id,
                source_drive_id=request.to_drive_id, dest_drive_id=request.from_drive_id
            )
        except Exception:
            await session.rollback()
            logger.warning(f"⚠️ Copy for request {request_id} failed, request left unapproved")
            raise

    async def request_copy(
        self,
        session: AsyncSession,
        actor: Actor,
        owner_id: str,
        item_type: str,
        target_id: str,
        message: Optional[str] = None
    ) -> CopyRequestOutcome:
        """
        Ask ``owner_id`` for a copy of one of their files or folders.

        Raises:
            ValueError: unknown item type
            InvalidRequestStateError: the actor asked for their own content
            NotFoundError: owner has no drive, or the item is not live in it
            CopyNotAllowedError: the owner's copy policy is DENY
            DuplicateRequestError: the same request is already pending

        Under an ALLOW policy a failed copy stores no request at all.
        """
        if item_type not in ITEM_TYPES:
            raise ValueError(f"Unknown item type: {item_type}")
        if owner_id == actor.id:
            raise InvalidRequestStateError(target_id, "none", "You cannot request a copy of your own content")

        owner_drive = await self.drives.get_drive(session, owner_id)
        if owner_drive is None:
            raise NotFoundError("drive", owner_id)
        if owner_drive.copy_policy is CopyPolicy.DENY:
            logger.warning(f"🚫 Copy request from {actor.id} refused by policy of {owner_id}")
            raise CopyNotAllowedError(owner_id)

        model = DriveFolder if item_type == "folder" else DriveFile
        target = await session.scalar(
            select(model.id).where(
                model.id == target_id,
                model.drive_id == owner_drive.id,
                model.deleted_at.is_(None),
            )
        )
        if target is None:
            raise NotFoundError(item_type, target_id)

        pending = await session.scalar(
            select(CopyRequest.id).where(
                CopyRequest.from_user_id == actor.id,
                CopyRequest.to_user_id == owner_id,
                CopyRequest.item_type == item_type,
                CopyRequest.target_id == target_id,
                CopyRequest.status == CopyRequestStatus.PENDING,
            )
        )
        if pending is not None:
            raise DuplicateRequestError(pending)

        own_drive = await self.drives.get_or_create_drive(session, actor)
        request = CopyRequest(
            from_user_id=actor.id,
            to_user_id=owner_id,
            from_drive_id=own_drive.id,
            to_drive_id=owner_drive.id,
            item_type=item_type,
            target_id=target_id,
            message=message,
        )
        session.add(request)

        if owner_drive.copy_policy is CopyPolicy.ALLOW:
            await session.flush()
            result = await self._perform(session, request)
            logger.info(f"✅ Copy of {item_type} {target_id} approved automatically for {actor.id}")
            return CopyRequestOutcome(request=request, copy=result)

        await session.commit()
        logger.info(f"📨 Copy request {request.id} from {actor.id} to {owner_id} for {item_type} {target_id}")
        return CopyRequestOutcome(request=request)

    async def list_requests(
        self,
        session: AsyncSession,
        actor: Actor,
        direction: str = "all",
        status: Optional[CopyRequestStatus] = None,
        page: int = 1,
        limit: int = 50
    ) -> Page:
        """Requests the actor sent, received, or both, newest first"""
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown direction: {direction}")
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        if direction == "sent":
            conditions = [CopyRequest.from_user_id == actor.id]
        elif direction == "received":
            conditions = [CopyRequest.to_user_id == actor.id]
        else:
            conditions = [or_(CopyRequest.from_user_id == actor.id, CopyRequest.to_user_id == actor.id)]
        if status is not None:
            conditions.append(CopyRequest.status == CopyRequestStatus(status))

        total = await session.scalar(select(func.count()).select_from(CopyRequest).where(*conditions))
        result = await session.execute(
            select(CopyRequest)
            .where(*conditions)
            .order_by(CopyRequest.created_at.desc(), CopyRequest.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)

    async def approve(self, session: AsyncSession, actor: Actor, request_id: str) -> CopyRequestOutcome:
        """
        Owner approves a pending request; the item is copied into the requester's drive.

        If the copy fails (quota, path collision, storage) the request stays
        PENDING and the error propagates.

        Raises:
            AccessDeniedError: the actor is the requester, not the owner
            InvalidRequestStateError: the request is no longer pending
        """
        request = await self._load(session, actor, request_id)
        if request.to_user_id != actor.id:
            raise AccessDeniedError("copy_request", request_id)
        if request.status is not CopyRequestStatus.PENDING:
            raise InvalidRequestStateError(request_id, request.status.value, "Copy request is not pending")

        result = await self._perform(session, request)
        logger.info(f"✅ Approved copy request {request_id}")
        return CopyRequestOutcome(request=request, copy=result)

    async def deny(self, session: AsyncSession, actor: Actor, request_id: str) -> CopyRequestOutcome:
        request = await self._load(session, actor, request_id)
        if request.to_user_id != actor.id:
            raise AccessDeniedError("copy_request", request_id)
        if request.status is not CopyRequestStatus.PENDING:
            raise InvalidRequestStateError(request_id, request.status.value, "Copy request is not pending")

        request.status = CopyRequestStatus.DENIED
        await session.commit()
        logger.info(f"🚫 Denied copy request {request_id}")
        return CopyRequestOutcome(request=request)

    async def cancel(self, session: AsyncSession, actor: Actor, request_id: str) -> None:
        """Requester withdraws a pending request"""
        request = await self._load(session, actor, request_id)
        if request.from_user_id != actor.id:
            raise AccessDeniedError("copy_request", request_id)
        if request.status is not CopyRequestStatus.PENDING:
            raise InvalidRequestStateError(request_id, request.status.value, "Only pending requests can be cancelled")

        await session.delete(request)
        await session.commit()
        logger.info(f"🗑️  Cancelled copy request {request_id}")
