"""
Tests for storage/bandwidth quota accounting
"""
from datetime import datetime, timedelta

import pytest

from study_drive.core.errors import QuotaExceededError
from study_drive.services import QuotaKind
from study_drive.services.quota import next_reset


async def _set_usage(session, drive, **values):
    for key, value in values.items():
        setattr(drive, key, value)
    await session.commit()


async def test_exact_fit_succeeds_and_overshoot_changes_nothing(session, drive, quota):
    await _set_usage(session, drive, storage_limit=1000, storage_used=900)

    with pytest.raises(QuotaExceededError) as exc_info:
        await quota.reserve(session, drive.id, 200)
    assert exc_info.value.status_code == 403
    assert exc_info.value.details["used"] == 900
    assert exc_info.value.details["limit"] == 1000

    await session.refresh(drive)
    assert drive.storage_used == 900

    await quota.reserve(session, drive.id, 100)
    await session.refresh(drive)
    assert drive.storage_used == 1000

    with pytest.raises(QuotaExceededError):
        await quota.reserve(session, drive.id, 1)
    await session.refresh(drive)
    assert drive.storage_used == 1000


async def test_upload_at_quota_boundary(session, drive, hierarchy, actor, store):
    await _set_usage(session, drive, storage_limit=1000, storage_used=900)

    with pytest.raises(QuotaExceededError):
        await hierarchy.create_file(session, actor, drive.id, "too-big.bin", b"x" * 150)
    await session.refresh(drive)
    assert drive.storage_used == 900
    assert [p for p in store.root.rglob("*") if p.is_file()] == []

    result = await hierarchy.create_file(session, actor, drive.id, "exact.bin", b"x" * 100)
    await session.refresh(drive)
    assert drive.storage_used == 1000
    assert await store.get(result.file.stored_name) == b"x" * 100


async def test_charge_does_not_commit(session, drive, quota):
    await quota.charge(session, drive.id, 500)
    await session.rollback()

    await session.refresh(drive)
    assert drive.storage_used == 0


async def test_negative_delta_rejected(session, drive, quota):
    with pytest.raises(ValueError):
        await quota.charge(session, drive.id, -1)


async def test_release_floors_at_zero(session, drive, quota):
    await quota.reserve(session, drive.id, 300)
    await quota.release(session, drive.id, 100)
    await session.commit()
    await session.refresh(drive)
    assert drive.storage_used == 200

    await quota.release(session, drive.id, 1_000)
    await session.commit()
    await session.refresh(drive)
    assert drive.storage_used == 0


async def test_bandwidth_rejection_is_429(session, drive, quota):
    await _set_usage(session, drive, bandwidth_limit=1000, bandwidth_used=950)

    with pytest.raises(QuotaExceededError) as exc_info:
        await quota.reserve(session, drive.id, 100, QuotaKind.BANDWIDTH)
    assert exc_info.value.status_code == 429
    assert "reset_at" in exc_info.value.details


async def test_bandwidth_resets_lazily(session, drive, quota, clock):
    original_reset = drive.bandwidth_reset_at
    await _set_usage(session, drive, bandwidth_used=drive.bandwidth_limit)

    clock.advance(hours=25)
    await quota.reserve(session, drive.id, 400, QuotaKind.BANDWIDTH)

    await session.refresh(drive)
    assert drive.bandwidth_used == 400
    assert drive.bandwidth_reset_at == original_reset + timedelta(hours=24)
    assert drive.bandwidth_reset_at > clock()


async def test_rejected_bandwidth_charge_rolls_back_reset(session, drive, quota, clock):
    original_reset = drive.bandwidth_reset_at
    await _set_usage(session, drive, bandwidth_used=9_000)

    clock.advance(hours=25)
    with pytest.raises(QuotaExceededError):
        await quota.reserve(session, drive.id, drive.bandwidth_limit + 1, QuotaKind.BANDWIDTH)

    await session.refresh(drive)
    assert drive.bandwidth_used == 9_000
    assert drive.bandwidth_reset_at == original_reset


async def test_bandwidth_status_applies_reset(session, drive, quota, clock):
    await _set_usage(session, drive, bandwidth_used=2_500)

    status = await quota.bandwidth_status(session, drive.id)
    assert status.used == 2_500
    assert status.percentage == 25.0

    clock.advance(days=3)
    status = await quota.bandwidth_status(session, drive.id)
    assert status.used == 0
    assert status.reset_at > clock()


def test_next_reset_advances_by_whole_periods():
    period = timedelta(hours=24)
    reset_at = datetime(2024, 1, 1)

    assert next_reset(reset_at, datetime(2023, 12, 31), period) == reset_at
    assert next_reset(reset_at, datetime(2024, 1, 1), period) == datetime(2024, 1, 2)
    assert next_reset(reset_at, datetime(2024, 1, 3, 6), period) == datetime(2024, 1, 4)


def test_check_storage_is_read_only(drive, quota):
    drive.storage_used = 9_990
    with pytest.raises(QuotaExceededError):
        quota.check_storage(drive, 11)
    quota.check_storage(drive, 10)
    assert drive.storage_used == 9_990
