"""
Tests for mirroring subjects into drives
"""
import pytest
from sqlalchemy import select

from study_drive.core.errors import DuplicatePathError, NotFoundError
from study_drive.models import DriveFile, DriveFolder, Subject, SubjectFile
from study_drive.services import DatabaseSubjectSource, SubjectSyncService


@pytest.fixture
def subject_sync(hierarchy, drives, store):
    return SubjectSyncService(hierarchy, drives, DatabaseSubjectSource(store))


async def _subject(session, store, user_id, name, files):
    subject = Subject(user_id=user_id, name=name, content="Syllabus")
    session.add(subject)
    await session.flush()
    for file_name, content in files:
        key = f"subjects/{subject.id}/{file_name}"
        if content is not None:
            await store.put(key, content)
        session.add(SubjectFile(
            subject_id=subject.id,
            original_name=file_name,
            storage_key=key,
            size_bytes=len(content or b""),
            mime_type="application/pdf",
        ))
    await session.commit()
    return subject


async def _mirrored(session, drive_id):
    result = await session.execute(
        select(DriveFile.original_name).where(DriveFile.drive_id == drive_id).order_by(DriveFile.original_name)
    )
    return list(result.scalars().all())


async def test_sync_creates_folder_and_files(session, subject_sync, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Physics", [
        ("waves.pdf", b"waves"),
        ("optics.pdf", b"optics"),
    ])

    result = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert (result.synced, result.total, result.failed) == (2, 2, [])

    folder = await session.get(DriveFolder, result.folder_id)
    assert folder.path == "/Subjects - Physics"
    assert folder.subject_id == subject.id
    assert await _mirrored(session, drive.id) == ["optics.pdf", "waves.pdf"]

    await session.refresh(drive)
    assert drive.storage_used == 11


async def test_sync_is_idempotent(session, subject_sync, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Physics", [("waves.pdf", b"waves")])

    await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    again = await subject_sync.sync_subject_to_drive(session, actor, subject.id)

    assert (again.synced, again.total) == (0, 1)
    assert await _mirrored(session, drive.id) == ["waves.pdf"]
    folders = (await session.execute(select(DriveFolder).where(DriveFolder.drive_id == drive.id))).scalars().all()
    assert len(folders) == 1


async def test_trashed_mirror_file_is_not_resynced(session, subject_sync, hierarchy, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Physics", [("waves.pdf", b"waves")])
    await subject_sync.sync_subject_to_drive(session, actor, subject.id)

    mirrored = await session.scalar(select(DriveFile).where(DriveFile.drive_id == drive.id))
    await hierarchy.soft_delete_file(session, actor, mirrored.id)

    result = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert result.synced == 0


async def test_failed_file_does_not_abort_batch(session, subject_sync, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Chemistry", [
        ("present.pdf", b"present"),
        ("missing.pdf", None),  # blob never written
        ("also-present.pdf", b"also"),
    ])

    result = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert (result.synced, result.total) == (2, 3)
    assert [(f.name, f.code) for f in result.failed] == [("missing.pdf", "IO_FAILURE")]
    assert await _mirrored(session, drive.id) == ["also-present.pdf", "present.pdf"]

    retry = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert retry.synced == 0
    assert len(retry.failed) == 1


async def test_foreign_subject_not_found(session, subject_sync, store, actor, other_actor, drive):
    subject = await _subject(session, store, other_actor.id, "Secret", [])

    with pytest.raises(NotFoundError):
        await subject_sync.sync_subject_to_drive(session, actor, subject.id)


async def test_subject_folder_lifecycle(session, subject_sync, actor, drive):
    folder = await subject_sync.ensure_subject_folder(session, actor, "subject-1", "Biology")
    assert folder.path == "/Subjects - Biology"
    assert (await subject_sync.ensure_subject_folder(session, actor, "subject-1", "Biology")).id == folder.id

    renamed = await subject_sync.rename_subject_folder(session, actor, "subject-1", "Life Sciences")
    assert renamed.path == "/Subjects - Life Sciences"

    trashed = await subject_sync.trash_subject_folder(session, actor, "subject-1")
    assert trashed.deleted_at is not None
    assert await subject_sync.trash_subject_folder(session, actor, "subject-1") is None
    assert await subject_sync.rename_subject_folder(session, actor, "subject-1", "Gone") is None


class _FlakySource(DatabaseSubjectSource):
    """Subject source whose reads fail with a raw socket error for some files"""

    def __init__(self, store, failing):
        super().__init__(store)
        self.failing = failing

    async def read_file(self, ref):
        if ref.name in self.failing:
            raise ConnectionResetError(104, "Connection reset by peer")
        return await super().read_file(ref)


async def test_source_os_error_is_reported_per_file(session, hierarchy, drives, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Geology", [
        ("rocks.pdf", b"rocks"),
        ("faults.pdf", b"faults"),
        ("quakes.pdf", b"quakes"),
    ])
    subject_sync = SubjectSyncService(hierarchy, drives, _FlakySource(store, {"faults.pdf"}))

    result = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert (result.synced, result.total) == (2, 3)
    assert [(f.name, f.code) for f in result.failed] == [("faults.pdf", "IO_FAILURE")]
    assert "Connection reset" in result.failed[0].message
    assert await _mirrored(session, drive.id) == ["quakes.pdf", "rocks.pdf"]


async def test_trashed_mirror_folder_is_restored_on_resync(session, subject_sync, store, actor, drive):
    subject = await _subject(session, store, actor.id, "Physics", [("waves.pdf", b"waves")])
    first = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    await subject_sync.trash_subject_folder(session, actor, subject.id)

    subject.name = "Modern Physics"
    await session.commit()

    again = await subject_sync.sync_subject_to_drive(session, actor, subject.id)
    assert again.folder_id == first.folder_id
    assert again.synced == 0

    folder = await session.get(DriveFolder, again.folder_id)
    assert folder.deleted_at is None
    assert folder.path == "/Subjects - Modern Physics"
    live = (await session.execute(
        select(DriveFile.original_name).where(DriveFile.folder_id == folder.id, DriveFile.deleted_at.is_(None))
    )).scalars().all()
    assert live == ["waves.pdf"]
    folders = (await session.execute(select(DriveFolder).where(DriveFolder.drive_id == drive.id))).scalars().all()
    assert len(folders) == 1


async def test_concurrently_created_mirror_is_reused(session, subject_sync, hierarchy, actor, drive, monkeypatch):
    # Another request created the mirror (under the old title) after our lookup
    drive_id = drive.id
    existing = (await hierarchy.create_folder(
        session, actor, drive_id, "Subjects - Old Title", subject_id="subject-1"
    )).id
    lookup = subject_sync._mirror_folder
    calls = []

    async def stale_lookup(session, drive_id, subject_id):
        calls.append(subject_id)
        if len(calls) == 1:
            return None
        return await lookup(session, drive_id, subject_id)

    monkeypatch.setattr(subject_sync, "_mirror_folder", stale_lookup)

    folder = await subject_sync.ensure_subject_folder(session, actor, "subject-1", "New Title")
    assert folder.id == existing
    assert len(calls) == 2
    live = (await session.execute(
        select(DriveFolder.id).where(DriveFolder.drive_id == drive_id, DriveFolder.deleted_at.is_(None))
    )).scalars().all()
    assert live == [existing]


async def test_user_folder_blocking_mirror_path_is_duplicate(session, subject_sync, hierarchy, actor, drive):
    await hierarchy.create_folder(session, actor, drive.id, "Subjects - Biology")

    with pytest.raises(DuplicatePathError):
        await subject_sync.ensure_subject_folder(session, actor, "subject-1", "Biology")
