"""Tests for the background finalization queue."""

from datetime import timedelta

import pytest

from jobs import COMPLETED, FAILED, FinalizationJobQueue
from promotion import PromotionCoordinator
from tests.helpers import make_manifest, make_page


@pytest.fixture
def coordinator(tmp_path) -> PromotionCoordinator:
    return PromotionCoordinator(tmp_path / "content", tmp_path / "assets")


class TestFinalizationJobQueue:

    @pytest.mark.asyncio
    async def test_successful_job(self, coordinator) -> None:
        coordinator.stager.ensure("s1")
        coordinator.stager.save_manifest("s1", make_manifest([make_page("/a")], session_id="s1"))
        queue = FinalizationJobQueue(coordinator)

        job_id = queue.queue_finalization("s1", ["/a"])
        job = await queue.wait(job_id)

        assert job.status == COMPLETED
        assert job.progress == 100
        assert job.error is None
        assert job.duration is not None and job.duration >= 0
        assert [p.route for p in job.result.manifest.pages] == ["/a"]
        assert queue.get_job_by_session("s1") is job

    @pytest.mark.asyncio
    async def test_failed_job_keeps_the_error(self, coordinator, monkeypatch, capsys) -> None:
        def broken(session_id, staged, routes):
            raise OSError("disk full")

        monkeypatch.setattr(coordinator, "_promote_locked", broken)
        queue = FinalizationJobQueue(coordinator)

        job = await queue.wait(queue.queue_finalization("s1"))

        assert job.status == FAILED
        assert job.error == "disk full"
        assert job.result is None
        assert job.completed_at is not None
        assert "failed: disk full" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_stats_count_by_status(self, coordinator, monkeypatch) -> None:
        queue = FinalizationJobQueue(coordinator, max_concurrent_jobs=2)
        ok_id = queue.queue_finalization("ok")
        await queue.wait(ok_id)

        def broken(session_id, staged, routes):
            raise ValueError()

        monkeypatch.setattr(coordinator, "_promote_locked", broken)
        bad = await queue.wait(queue.queue_finalization("bad"))

        assert bad.error == "ValueError"
        assert queue.stats() == {
            "totalJobs": 2,
            "pending": 0,
            "processing": 0,
            "completed": 1,
            "failed": 1,
            "maxConcurrentJobs": 2,
        }

    @pytest.mark.asyncio
    async def test_cleanup_forgets_old_finished_jobs(self, coordinator) -> None:
        queue = FinalizationJobQueue(coordinator)
        old_id = queue.queue_finalization("old")
        new_id = queue.queue_finalization("new")
        await queue.wait(old_id)
        await queue.wait(new_id)
        old = queue.get_job(old_id)
        old.completed_at -= timedelta(hours=2)

        assert queue.cleanup_old_jobs() == 1
        assert queue.get_job(old_id) is None
        assert queue.get_job(new_id) is not None

    def test_unknown_job(self, coordinator) -> None:
        queue = FinalizationJobQueue(coordinator)
        assert queue.get_job("missing") is None
        assert queue.get_job_by_session("missing") is None
