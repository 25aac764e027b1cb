"""
Tests for ownership checks
"""
import pytest

from study_drive.core.errors import AccessDeniedError, NotFoundError
from study_drive.services import AccessValidator


async def test_ownership_predicates(session, access, hierarchy, actor, other_actor, drive):
    folder = await hierarchy.create_folder(session, actor, drive.id, "A")
    upload = await hierarchy.create_file(session, actor, drive.id, "a.txt", b"a", folder_id=folder.id)

    assert await access.owns_drive(session, actor, drive.id)
    assert await access.owns_folder(session, actor, folder.id)
    assert await access.owns_file(session, actor, upload.file.id)

    assert not await access.owns_drive(session, other_actor, drive.id)
    assert not await access.owns_folder(session, other_actor, folder.id)
    assert not await access.owns_file(session, other_actor, upload.file.id)
    assert not await access.owns_file(session, actor, "missing")


async def test_foreign_resources_hidden_by_default(session, access, hierarchy, actor, other_actor, drive):
    upload = await hierarchy.create_file(session, actor, drive.id, "a.txt", b"a")

    with pytest.raises(NotFoundError):
        await access.require_file(session, other_actor, upload.file.id)
    with pytest.raises(NotFoundError):
        await access.require_drive(session, other_actor, drive.id)


async def test_foreign_resources_denied_when_not_hidden(session, hierarchy, actor, other_actor, drive):
    access = AccessValidator(hide_foreign=False)
    folder = await hierarchy.create_folder(session, actor, drive.id, "A")
    upload = await hierarchy.create_file(session, actor, drive.id, "a.txt", b"a")

    with pytest.raises(AccessDeniedError) as exc_info:
        await access.require_file(session, other_actor, upload.file.id)
    assert exc_info.value.status_code == 403
    with pytest.raises(AccessDeniedError):
        await access.require_folder(session, other_actor, folder.id)
    with pytest.raises(NotFoundError):
        await access.require_folder(session, other_actor, "missing")


async def test_trashed_rows_only_resolve_when_requested(session, access, hierarchy, actor, drive):
    upload = await hierarchy.create_file(session, actor, drive.id, "a.txt", b"a")
    await hierarchy.soft_delete_file(session, actor, upload.file.id)

    with pytest.raises(NotFoundError):
        await access.require_file(session, actor, upload.file.id)
    trashed = await access.require_file(session, actor, upload.file.id, live=False)
    assert trashed.deleted_at is not None
