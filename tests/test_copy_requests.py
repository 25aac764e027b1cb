"""
Tests for copy requests between drives and the owner's copy policy
"""
import pytest
from sqlalchemy import func, select

from study_drive.core.errors import (
    AccessDeniedError,
    CopyNotAllowedError,
    DuplicateRequestError,
    InvalidRequestStateError,
    NotFoundError,
    QuotaExceededError,
)
from study_drive.models import CopyPolicy, CopyRequest, CopyRequestStatus, DriveActivity, DriveFile, DriveFolder
from study_drive.services import Actor, CopyRequestService


@pytest.fixture
def copy_requests(hierarchy, drives):
    return CopyRequestService(hierarchy, drives)


async def _shared_notes(session, hierarchy, owner, owner_drive, policy=CopyPolicy.REQUEST):
    """Owner's public /Notes folder holding one 10 byte file"""
    owner_drive.copy_policy = policy
    await session.commit()
    folder = await hierarchy.create_folder(session, owner, owner_drive.id, "Notes", is_public=True)
    upload = await hierarchy.create_file(session, owner, owner_drive.id, "week1.pdf", b"w" * 10, folder_id=folder.id)
    return folder.id, upload.file.id


async def _request_count(session):
    return await session.scalar(select(func.count()).select_from(CopyRequest))


async def test_deny_policy_refuses_request(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    folder_id, _ = await _shared_notes(session, hierarchy, other_actor, other_drive, CopyPolicy.DENY)

    with pytest.raises(CopyNotAllowedError) as exc_info:
        await copy_requests.request_copy(session, actor, other_actor.id, "folder", folder_id)
    assert exc_info.value.status_code == 403
    assert await _request_count(session) == 0


async def test_allow_policy_copies_immediately(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    folder_id, _ = await _shared_notes(session, hierarchy, other_actor, other_drive, CopyPolicy.ALLOW)

    outcome = await copy_requests.request_copy(session, actor, other_actor.id, "folder", folder_id)
    assert outcome.request.status is CopyRequestStatus.APPROVED
    assert outcome.copy.folder.drive_id == drive.id
    assert outcome.copy.folder.path == "/Notes"
    assert outcome.copy.folder.is_public is False
    assert [f.original_name for f in outcome.copy.files] == ["week1.pdf"]

    await session.refresh(drive)
    await session.refresh(other_drive)
    assert drive.storage_used == 10
    assert other_drive.storage_used == 10

    imported = await session.scalar(
        select(DriveActivity).where(DriveActivity.drive_id == drive.id, DriveActivity.action == "import")
    )
    assert imported.actor_id == actor.id
    assert imported.details["source_drive_id"] == other_drive.id


async def test_request_policy_waits_for_owner(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    _, file_id = await _shared_notes(session, hierarchy, other_actor, other_drive)

    outcome = await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id, message="For the exam")
    request_id = outcome.request.id
    assert outcome.request.status is CopyRequestStatus.PENDING
    assert outcome.copy is None
    assert await session.scalar(select(DriveFile).where(DriveFile.drive_id == drive.id)) is None

    with pytest.raises(DuplicateRequestError):
        await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id)
    with pytest.raises(AccessDeniedError):
        await copy_requests.approve(session, actor, request_id)

    approved = await copy_requests.approve(session, other_actor, request_id)
    assert approved.request.status is CopyRequestStatus.APPROVED
    [copy] = approved.copy.files
    assert copy.drive_id == drive.id
    assert copy.folder_id is None
    assert copy.original_name == "week1.pdf"

    with pytest.raises(InvalidRequestStateError):
        await copy_requests.approve(session, other_actor, request_id)
    with pytest.raises(InvalidRequestStateError):
        await copy_requests.cancel(session, actor, request_id)


async def test_deny_and_cancel(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    folder_id, file_id = await _shared_notes(session, hierarchy, other_actor, other_drive)
    first = (await copy_requests.request_copy(session, actor, other_actor.id, "folder", folder_id)).request.id
    second = (await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id)).request.id

    with pytest.raises(AccessDeniedError):
        await copy_requests.deny(session, actor, first)
    denied = await copy_requests.deny(session, other_actor, first)
    assert denied.request.status is CopyRequestStatus.DENIED
    assert await session.scalar(select(DriveFolder).where(DriveFolder.drive_id == drive.id)) is None

    stranger = Actor(id="user-3")
    with pytest.raises(NotFoundError):
        await copy_requests.cancel(session, stranger, second)
    with pytest.raises(AccessDeniedError):
        await copy_requests.cancel(session, other_actor, second)

    await copy_requests.cancel(session, actor, second)
    assert await session.get(CopyRequest, second) is None

    # A denied request does not block asking again
    again = await copy_requests.request_copy(session, actor, other_actor.id, "folder", folder_id)
    assert again.request.id != first


async def test_failed_approval_stays_pending(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    _, file_id = await _shared_notes(session, hierarchy, other_actor, other_drive)
    drive_id = drive.id
    drive.storage_limit = 5
    await session.commit()
    request_id = (await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id)).request.id

    with pytest.raises(QuotaExceededError):
        await copy_requests.approve(session, other_actor, request_id)

    request = await session.get(CopyRequest, request_id, populate_existing=True)
    assert request.status is CopyRequestStatus.PENDING
    assert await session.scalar(select(DriveFile).where(DriveFile.drive_id == drive_id)) is None


async def test_invalid_targets(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    folder_id, file_id = await _shared_notes(session, hierarchy, other_actor, other_drive)
    own = await hierarchy.create_file(session, actor, drive.id, "mine.pdf", b"mine")

    with pytest.raises(InvalidRequestStateError):
        await copy_requests.request_copy(session, actor, actor.id, "file", own.file.id)
    with pytest.raises(NotFoundError):
        await copy_requests.request_copy(session, actor, other_actor.id, "file", own.file.id)
    with pytest.raises(NotFoundError):
        await copy_requests.request_copy(session, actor, "user-without-drive", "file", file_id)
    with pytest.raises(ValueError):
        await copy_requests.request_copy(session, actor, other_actor.id, "subject", folder_id)

    await hierarchy.soft_delete_file(session, other_actor, file_id)
    with pytest.raises(NotFoundError):
        await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id)


async def test_list_requests_by_direction(session, hierarchy, copy_requests, actor, other_actor, drive, other_drive):
    folder_id, file_id = await _shared_notes(session, hierarchy, other_actor, other_drive)
    await copy_requests.request_copy(session, actor, other_actor.id, "folder", folder_id)
    pending = (await copy_requests.request_copy(session, actor, other_actor.id, "file", file_id)).request.id
    await copy_requests.deny(session, other_actor, pending)

    sent = await copy_requests.list_requests(session, actor, "sent")
    assert sent.total == 2
    assert (await copy_requests.list_requests(session, actor, "received")).total == 0
    assert (await copy_requests.list_requests(session, other_actor, "received")).total == 2

    denied = await copy_requests.list_requests(session, other_actor, status=CopyRequestStatus.DENIED)
    assert [r.id for r in denied.items] == [pending]

    assert (await copy_requests.list_requests(session, Actor(id="user-3"))).total == 0
    with pytest.raises(ValueError):
        await copy_requests.list_requests(session, actor, "sideways")
