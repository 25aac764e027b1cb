"""
Request-scoped dependencies: actor identity, services, rate limits
"""
import logging
from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.errors import AuthenticationRequiredError, RateLimitedError
from ..models import Drive
from ..services import (
    ActivityLogger,
    Actor,
    CopyRequestService,
    DriveService,
    HierarchyManager,
    QuotaAccountant,
    RateLimiter,
    SubjectSyncService,
)

logger = logging.getLogger(__name__)


async def get_actor(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_email: Annotated[Optional[str], Header()] = None,
    x_user_name: Annotated[Optional[str], Header()] = None
) -> Actor:
    """Identity forwarded by the authenticating gateway"""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationRequiredError("Missing X-User-Id header")
    return Actor(id=x_user_id.strip(), email=x_user_email, name=x_user_name)


def get_hierarchy(request: Request) -> HierarchyManager:
    return request.app.state.hierarchy


def get_drive_service(request: Request) -> DriveService:
    return request.app.state.drives


def get_quota(request: Request) -> QuotaAccountant:
    return request.app.state.quota


def get_activity(request: Request) -> ActivityLogger:
    return request.app.state.activity


def get_sync_service(request: Request) -> SubjectSyncService:
    return request.app.state.subject_sync


def get_copy_requests(request: Request) -> CopyRequestService:
    return request.app.state.copy_requests


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def rate_limited(operation: str) -> Callable:
    """
    Dependency factory: count one ``operation`` for the caller.

    Resolves to the authenticated Actor so routes need a single dependency.
    """
    async def dependency(
        actor: Annotated[Actor, Depends(get_actor)],
        limiter: Annotated[RateLimiter, Depends(get_rate_limiter)]
    ) -> Actor:
        result = limiter.check(actor.id, operation)
        if not result.allowed:
            raise RateLimitedError(operation, result.reset_at)
        return actor

    return dependency


async def get_current_drive(
    actor: Annotated[Actor, Depends(get_actor)],
    db: Annotated[AsyncSession, Depends(get_db)],
    drives: Annotated[DriveService, Depends(get_drive_service)]
) -> Drive:
    """The caller's drive, created on first use"""
    return await drives.get_or_create_drive(db, actor)


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentDrive = Annotated[Drive, Depends(get_current_drive)]
Hierarchy = Annotated[HierarchyManager, Depends(get_hierarchy)]
