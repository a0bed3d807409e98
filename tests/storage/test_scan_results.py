"""Tests for ScanResult persistence and the baseline pointer."""

import asyncio

import pytest

from vigil.errors import ScanNotFoundError, ScanStateError
from vigil.models.file_record import FILE_NEW
from vigil.models.scan_result import (
    ACTIVE_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_RUNNING,
)
from vigil.storage.scan_results import scan_to_dict


async def _completed_scan(scan_repo, **fields):
    scan = await scan_repo.create()
    await scan_repo.transition(scan.id, (STATUS_RUNNING,), STATUS_COMPLETED, **fields)
    return scan.id


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_defaults(self, scan_repo):
        scan = await scan_repo.create()
        assert scan.status == STATUS_RUNNING
        assert scan.scan_type == "manual"
        assert scan.total_files == 0

    @pytest.mark.asyncio
    async def test_create_rejects_bad_input(self, scan_repo):
        with pytest.raises(ValueError):
            await scan_repo.create(scan_type="nightly")
        with pytest.raises(ValueError):
            await scan_repo.create(status=STATUS_COMPLETED)

    @pytest.mark.asyncio
    async def test_transition_is_conditional(self, scan_repo):
        """A completed scan cannot then be cancelled, and vice versa."""
        scan = await scan_repo.create(status=STATUS_QUEUED)
        assert await scan_repo.transition(scan.id, ACTIVE_STATUSES, STATUS_CANCELLED) is True
        assert await scan_repo.transition(scan.id, (STATUS_RUNNING,), STATUS_COMPLETED) is False
        assert await scan_repo.get_status(scan.id) == STATUS_CANCELLED

    @pytest.mark.asyncio
    async def test_update_ignores_unknown_fields(self, scan_repo):
        scan = await scan_repo.create()
        assert await scan_repo.update(scan.id, total_files=5, id=99, scan_date=None) is True
        refreshed = await scan_repo.require(scan.id)
        assert refreshed.total_files == 5
        assert refreshed.id == scan.id

    @pytest.mark.asyncio
    async def test_require_missing(self, scan_repo):
        with pytest.raises(ScanNotFoundError):
            await scan_repo.require(404)

    @pytest.mark.asyncio
    async def test_latest_completed_ignores_other_statuses(self, scan_repo):
        first = await _completed_scan(scan_repo)
        failed = await scan_repo.create()
        await scan_repo.transition(failed.id, (STATUS_RUNNING,), STATUS_FAILED)
        await scan_repo.create()  # still running
        latest = await scan_repo.latest_completed()
        assert latest.id == first

    @pytest.mark.asyncio
    async def test_fail_interrupted(self, scan_repo):
        running = await scan_repo.create()
        queued = await scan_repo.create(status=STATUS_QUEUED)
        done = await _completed_scan(scan_repo)
        assert await scan_repo.fail_interrupted("restart") == 2
        assert await scan_repo.get_status(running.id) == STATUS_FAILED
        assert await scan_repo.get_status(queued.id) == STATUS_FAILED
        assert await scan_repo.get_status(done) == STATUS_COMPLETED
        assert await scan_repo.has_active_scan() is False

    @pytest.mark.asyncio
    async def test_statistics(self, scan_repo):
        await _completed_scan(scan_repo, changed_files=3, scan_duration=2.0)
        await _completed_scan(scan_repo, changed_files=1, scan_duration=4.0)
        failed = await scan_repo.create()
        await scan_repo.transition(failed.id, (STATUS_RUNNING,), STATUS_FAILED)
        stats = await scan_repo.statistics()
        assert stats == {
            "total_scans": 3,
            "completed_scans": 2,
            "failed_scans": 1,
            "avg_scan_duration": 3.0,
            "total_changed_files": 4,
        }

    @pytest.mark.asyncio
    async def test_pagination_newest_first(self, scan_repo):
        ids = [await _completed_scan(scan_repo) for _ in range(5)]
        page = await scan_repo.get_paginated(page=1, per_page=2)
        assert page["total_count"] == 5
        assert [s.id for s in page["results"]] == [ids[4], ids[3]]
        recent = await scan_repo.list_recent(limit=1)
        assert recent[0].id == ids[4]


class TestBaselinePointer:
    @pytest.mark.asyncio
    async def test_single_baseline_invariant(self, scan_repo):
        """Marking a new baseline leaves exactly one baseline."""
        ids = [await _completed_scan(scan_repo) for _ in range(7)]
        await scan_repo.set_baseline(ids[2])
        await scan_repo.set_baseline(ids[6])

        baseline_id = await scan_repo.get_baseline_id()
        assert baseline_id == ids[6]
        scans = await scan_repo.list_recent(limit=10)
        flags = [scan_to_dict(s, baseline_id)["is_baseline"] for s in scans]
        assert flags.count(True) == 1

    @pytest.mark.asyncio
    async def test_baseline_must_be_completed(self, scan_repo):
        scan = await scan_repo.create()
        with pytest.raises(ScanStateError):
            await scan_repo.set_baseline(scan.id)

    @pytest.mark.asyncio
    async def test_set_if_absent(self, scan_repo):
        first = await _completed_scan(scan_repo)
        second = await _completed_scan(scan_repo)
        assert await scan_repo.set_baseline_if_absent(first) is True
        assert await scan_repo.set_baseline_if_absent(second) is False
        assert await scan_repo.get_baseline_id() == first

        await scan_repo.clear_baseline()
        assert await scan_repo.get_baseline_id() is None
        assert await scan_repo.set_baseline_if_absent(second) is True

    @pytest.mark.asyncio
    async def test_delete_refuses_baseline_and_active(self, scan_repo):
        baseline = await _completed_scan(scan_repo)
        await scan_repo.set_baseline(baseline)
        with pytest.raises(ScanStateError):
            await scan_repo.delete(baseline)

        running = await scan_repo.create()
        with pytest.raises(ScanStateError):
            await scan_repo.delete(running.id)

    @pytest.mark.asyncio
    async def test_delete_cascades_records(self, scan_repo, record_repo):
        scan_id = await _completed_scan(scan_repo)
        await record_repo.add_batch(scan_id, [{
            "file_path": "a.php", "file_size": 1, "checksum": "a" * 64, "status": FILE_NEW,
        }])
        await scan_repo.delete(scan_id)
        assert await scan_repo.get(scan_id) is None
        assert await record_repo.get_by_scan(scan_id) == []

    @pytest.mark.asyncio
    async def test_concurrent_first_baseline_has_one_winner(self, scan_repo):
        ids = [await _completed_scan(scan_repo) for _ in range(4)]
        results = await asyncio.gather(*(scan_repo.set_baseline_if_absent(i) for i in ids))
        assert results.count(True) == 1
        assert await scan_repo.get_baseline_id() == ids[results.index(True)]

    @pytest.mark.asyncio
    async def test_set_baseline_on_empty_store(self, scan_repo):
        scan_id = await _completed_scan(scan_repo)
        assert await scan_repo.get_baseline_id() is None
        await scan_repo.set_baseline(scan_id)
        assert await scan_repo.get_baseline_id() == scan_id
        assert await scan_repo.set_baseline_if_absent(scan_id) is False


class TestRunningClaim:
    @pytest.mark.asyncio
    async def test_only_one_scan_can_run(self, scan_repo):
        first = await scan_repo.create(status=STATUS_QUEUED)
        second = await scan_repo.create(status=STATUS_QUEUED)
        assert await scan_repo.claim_running(first.id) is True
        assert await scan_repo.claim_running(first.id) is True
        assert await scan_repo.claim_running(second.id) is False
        assert await scan_repo.get_status(second.id) == STATUS_QUEUED
        assert await scan_repo.has_active_scan() is True

        await scan_repo.transition(first.id, (STATUS_RUNNING,), STATUS_COMPLETED)
        assert await scan_repo.claim_running(second.id) is True
        assert await scan_repo.get_status(second.id) == STATUS_RUNNING

    @pytest.mark.asyncio
    async def test_finished_scan_cannot_be_claimed(self, scan_repo):
        scan = await scan_repo.create(status=STATUS_QUEUED)
        await scan_repo.transition(scan.id, ACTIVE_STATUSES, STATUS_CANCELLED)
        assert await scan_repo.claim_running(scan.id) is False
        assert await scan_repo.claim_running(404) is False
        assert await scan_repo.get_status(scan.id) == STATUS_CANCELLED
