"""
Storage and bandwidth quota accounting per drive

Charges are single conditional UPDATE statements:

    UPDATE drives SET storage_used = storage_used + :delta
    WHERE id = :drive_id AND storage_used + :delta <= storage_limit

so the check and the charge are one atomic step in the database. Zero
affected rows means the limit would be exceeded and nothing was changed.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import case, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import NotFoundError, QuotaExceededError
from ..models import Drive, utcnow

logger = logging.getLogger(__name__)


class QuotaKind(str, enum.Enum):
    STORAGE = "storage"
    BANDWIDTH = "bandwidth"


@dataclass(frozen=True)
class BandwidthStatus:
    used: int
    limit: int
    reset_at: datetime
    percentage: float


def next_reset(reset_at: datetime, now: datetime, period: timedelta) -> datetime:
    """Advance ``reset_at`` by whole periods until it lies after ``now``"""
    if now < reset_at:
        return reset_at
    periods = (now - reset_at) // period + 1
    return reset_at + periods * period


class QuotaAccountant:
    """Checks and charges storage/bandwidth usage against drive limits"""

    def __init__(
        self,
        reset_period: timedelta = timedelta(hours=24),
        now: Callable[[], datetime] = utcnow
    ):
        self.reset_period = reset_period
        self._now = now

    async def _load(self, session: AsyncSession, drive_id: str) -> Drive:
        drive = await session.get(Drive, drive_id, populate_existing=True)
        if drive is None:
            raise NotFoundError("drive", drive_id)
        return drive

    @staticmethod
    def check_storage(drive: Drive, delta: int) -> None:
        """
        Read-only pre-check used before writing bytes.

        The authoritative check is the conditional UPDATE in ``charge``.
        """
        if drive.storage_used + delta > drive.storage_limit:
            raise QuotaExceededError("storage", drive.storage_used, drive.storage_limit, delta)

    async def _apply_bandwidth_reset(self, session: AsyncSession, drive: Drive) -> None:
        """Zero bandwidth usage if the reset time has passed (compare-and-set on reset time)"""
        now = self._now()
        if now < drive.bandwidth_reset_at:
            return

        new_reset = next_reset(drive.bandwidth_reset_at, now, self.reset_period)
        result = await session.execute(
            update(Drive)
            .where(Drive.id == drive.id, Drive.bandwidth_reset_at == drive.bandwidth_reset_at)
            .values(bandwidth_used=0, bandwidth_reset_at=new_reset)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"🔄 Bandwidth reset for drive {drive.id}, next reset {new_reset.isoformat()}")

    async def charge(
        self,
        session: AsyncSession,
        drive_id: str,
        delta: int,
        kind: QuotaKind = QuotaKind.STORAGE
    ) -> Drive:
        """
        Charge ``delta`` bytes inside the caller's transaction (no commit).

        Raises:
            QuotaExceededError: if used + delta > limit; nothing is charged
        """
        if delta < 0:
            raise ValueError("delta must be non-negative")

        drive = await self._load(session, drive_id)

        if kind is QuotaKind.BANDWIDTH:
            await self._apply_bandwidth_reset(session, drive)
            used_col, limit_col = Drive.bandwidth_used, Drive.bandwidth_limit
        else:
            used_col, limit_col = Drive.storage_used, Drive.storage_limit

        result = await session.execute(
            update(Drive)
            .where(Drive.id == drive_id, used_col + delta <= limit_col)
            .values({used_col: used_col + delta})
            .execution_options(synchronize_session=False)
        )

        drive = await self._load(session, drive_id)
        if result.rowcount == 0:
            used = drive.bandwidth_used if kind is QuotaKind.BANDWIDTH else drive.storage_used
            limit = drive.bandwidth_limit if kind is QuotaKind.BANDWIDTH else drive.storage_limit
            reset_at = drive.bandwidth_reset_at if kind is QuotaKind.BANDWIDTH else None
            logger.warning(f"⚠️ {kind.value} quota exceeded for drive {drive_id}: {used}+{delta} > {limit}")
            raise QuotaExceededError(kind.value, used, limit, delta, reset_at)

        return drive

    async def reserve(
        self,
        session: AsyncSession,
        drive_id: str,
        delta: int,
        kind: QuotaKind = QuotaKind.STORAGE
    ) -> Drive:
        """
        Charge ``delta`` and commit; on rejection roll back so no counter moves
        (including a pending bandwidth reset).
        """
        try:
            drive = await self.charge(session, drive_id, delta, kind)
            await session.commit()
            return drive
        except Exception:
            await session.rollback()
            raise

    async def release(self, session: AsyncSession, drive_id: str, delta: int) -> None:
        """Give back storage after a permanent deletion (inside caller's transaction)"""
        if delta <= 0:
            return
        await session.execute(
            update(Drive)
            .where(Drive.id == drive_id)
            .values(
                storage_used=case(
                    (Drive.storage_used >= delta, Drive.storage_used - delta),
                    else_=0
                )
            )
            .execution_options(synchronize_session=False)
        )
        logger.info(f"♻️ Released {delta} bytes of storage for drive {drive_id}")

    async def bandwidth_status(self, session: AsyncSession, drive_id: str) -> BandwidthStatus:
        """Current bandwidth usage, applying a due reset first"""
        drive = await self._load(session, drive_id)
        await self._apply_bandwidth_reset(session, drive)
        await session.commit()

        drive = await self._load(session, drive_id)
        percentage = (drive.bandwidth_used / drive.bandwidth_limit * 100) if drive.bandwidth_limit else 0.0
        return BandwidthStatus(
            used=drive.bandwidth_used,
            limit=drive.bandwidth_limit,
            reset_at=drive.bandwidth_reset_at,
            percentage=round(percentage, 2)
        )
