"""
Append-only activity log per drive

Entries are written inside the same transaction as the operation they
describe (outbox style): either both the change and its log entry commit, or
neither does. A failed log write therefore surfaces as a failed operation
instead of being silently dropped.
"""
import enum
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import DriveActivity

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ActivityAction(str, enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    CREATE = "create"
    RENAME = "rename"
    MOVE = "move"
    DELETE = "delete"
    RESTORE = "restore"
    PURGE = "purge"
    SYNC = "sync"
    COPY = "copy"
    IMPORT = "import"


# Badge categories shown in the activity feed
STAT_CATEGORIES: dict[str, tuple[ActivityAction, ...]] = {
    "uploads": (ActivityAction.UPLOAD,),
    "downloads": (ActivityAction.DOWNLOAD,),
    "deletions": (ActivityAction.DELETE, ActivityAction.PURGE),
    "moves": (ActivityAction.MOVE, ActivityAction.RENAME),
    "restores": (ActivityAction.RESTORE,),
    "copies": (ActivityAction.COPY, ActivityAction.IMPORT),
}


@dataclass
class ActivityPage:
    items: list[DriveActivity]
    total: int
    page: int
    limit: int
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class ActivityLogger:
    """Records and queries drive activity"""

    def record(
        self,
        session: AsyncSession,
        drive_id: str,
        actor_id: str,
        action: ActivityAction,
        target_type: str,
        target_name: str,
        target_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None
    ) -> DriveActivity:
        """Stage an entry in the caller's transaction; it is written on the caller's commit"""
        entry = DriveActivity(
            drive_id=drive_id,
            actor_id=actor_id,
            action=ActivityAction(action).value,
            target_type=target_type,
            target_id=target_id,
            target_name=target_name,
            details=metadata or {},
        )
        session.add(entry)
        logger.debug(f"📝 {entry.action} {target_type}:{target_name} (drive {drive_id})")
        return entry

    async def record_now(self, session: AsyncSession, drive_id: str, actor_id: str,
                         action: ActivityAction, target_type: str, target_name: str,
                         target_id: Optional[str] = None,
                         metadata: Optional[dict[str, Any]] = None) -> DriveActivity:
        """Write a standalone entry and commit; failures are logged and re-raised"""
        entry = self.record(session, drive_id, actor_id, action, target_type,
                            target_name, target_id, metadata)
        try:
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"❌ Failed to record {action} activity for drive {drive_id}: {e}")
            raise
        return entry

    async def query(
        self,
        session: AsyncSession,
        drive_id: str,
        action: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> ActivityPage:
        """
        Newest-first page of activity with per-category counts.

        ``action`` of None or "all" disables the filter. ``limit`` is clamped
        to 1..100 and ``page`` to >= 1.
        """
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = [DriveActivity.drive_id == drive_id]
        if action and action != "all":
            conditions.append(DriveActivity.action == ActivityAction(action).value)

        result = await session.execute(
            select(DriveActivity)
            .where(*conditions)
            .order_by(DriveActivity.created_at.desc(), DriveActivity.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = list(result.scalars().all())

        total = await session.scalar(
            select(func.count()).select_from(DriveActivity).where(*conditions)
        )

        return ActivityPage(
            items=items,
            total=total or 0,
            page=page,
            limit=limit,
            stats=await self.stats(session, drive_id)
        )

    async def stats(self, session: AsyncSession, drive_id: str) -> dict[str, int]:
        """Counts per badge category plus the overall total"""
        result = await session.execute(
            select(DriveActivity.action, func.count())
            .where(DriveActivity.drive_id == drive_id)
            .group_by(DriveActivity.action)
        )
        per_action = {action: count for action, count in result.all()}

        stats = {"all": sum(per_action.values())}
        for category, actions in STAT_CATEGORIES.items():
            stats[category] = sum(per_action.get(a.value, 0) for a in actions)
        return stats
