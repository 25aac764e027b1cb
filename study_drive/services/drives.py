"""
Drive lifecycle: one drive per user, created lazily on first access
"""
import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CopyPolicy, Drive, utcnow
from .access import Actor

logger = logging.getLogger(__name__)


class DriveService:
    """Creates and configures user drives"""

    def __init__(
        self,
        storage_limit: int,
        bandwidth_limit: int,
        reset_period: timedelta = timedelta(hours=24),
        now: Callable = utcnow
    ):
        self.storage_limit = storage_limit
        self.bandwidth_limit = bandwidth_limit
        self.reset_period = reset_period
        self._now = now

    async def get_drive(self, session: AsyncSession, user_id: str) -> Optional[Drive]:
        result = await session.execute(
            select(Drive)
            .where(Drive.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create_drive(self, session: AsyncSession, actor: Actor) -> Drive:
        """Return the actor's drive, creating it with default limits if missing"""
        drive = await self.get_drive(session, actor.id)
        if drive is not None:
            return drive

        drive = Drive(
            user_id=actor.id,
            storage_used=0,
            storage_limit=self.storage_limit,
            bandwidth_used=0,
            bandwidth_limit=self.bandwidth_limit,
            bandwidth_reset_at=self._now() + self.reset_period,
        )
        session.add(drive)
        try:
            await session.commit()
        except IntegrityError:
            # Another request created it first
            await session.rollback()
            drive = await self.get_drive(session, actor.id)
            if drive is None:
                raise
            return drive

        logger.info(f"✅ Created drive {drive.id} for user {actor.id}")
        return drive

    async def update_settings(
        self,
        session: AsyncSession,
        drive: Drive,
        is_private: Optional[bool] = None,
        copy_policy: Optional[CopyPolicy] = None
    ) -> Drive:
        if is_private is not None:
            drive.is_private = is_private
        if copy_policy is not None:
            drive.copy_policy = CopyPolicy(copy_policy)
        await session.commit()
        logger.info(f"⚙️  Updated settings for drive {drive.id}")
        return drive
