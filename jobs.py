"""
Background finalization jobs.

Finishing a session can take a while, so callers queue it and poll the job
instead of waiting.  Jobs run as asyncio tasks with bounded parallelism; the
promotion coordinator still serialises their destructive steps.
"""

import asyncio
import sys
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from manifest import PipelineSignature, utcnow
from promotion import PromotionCoordinator, PromotionResult

DEFAULT_MAX_CONCURRENT_JOBS = 5
DEFAULT_MAX_JOB_AGE = 3600.0  # seconds

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"


@dataclass
class FinalizationJob:
    job_id: str
    session_id: str
    status: str = PENDING
    progress: int = 0
    created_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    result: PromotionResult | None = None
    duration: float | None = None


class FinalizationJobQueue:

    def __init__(self, coordinator: PromotionCoordinator, max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS):
        self.coordinator = coordinator
        self.max_concurrent_jobs = max_concurrent_jobs
        self._jobs: dict[str, FinalizationJob] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._slots = asyncio.Semaphore(max_concurrent_jobs)

    def queue_finalization(
        self,
        session_id: str,
        all_collected_routes: list[str] | None = None,
        pipeline_signature: PipelineSignature | None = None,
    ) -> str:
        """Queue a promotion and return its job id immediately.

        Must be called from within a running event loop.
        """
        job = FinalizationJob(job_id=str(uuid.uuid4()), session_id=session_id)
        self._jobs[job.job_id] = job
        self._tasks[job.job_id] = asyncio.create_task(
            self._run(job, all_collected_routes, pipeline_signature)
        )
        print(f"  [job] Queued finalization {job.job_id} for session {session_id}")
        return job.job_id

    def get_job(self, job_id: str) -> FinalizationJob | None:
        return self._jobs.get(job_id)

    def get_job_by_session(self, session_id: str) -> FinalizationJob | None:
        for job in self._jobs.values():
            if job.session_id == session_id:
                return job
        return None

    async def wait(self, job_id: str) -> FinalizationJob:
        """Wait for a job to finish (successfully or not) and return it."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task
        return self._jobs[job_id]

    def cleanup_old_jobs(self, max_age: float = DEFAULT_MAX_JOB_AGE) -> int:
        """Forget finished jobs older than *max_age* seconds."""
        now = utcnow()
        stale = [
            job_id for job_id, job in self._jobs.items()
            if job.completed_at is not None
            and (now - job.completed_at).total_seconds() > max_age
        ]
        for job_id in stale:
            del self._jobs[job_id]
            self._tasks.pop(job_id, None)
        return len(stale)

    def stats(self) -> dict:
        counts = {PENDING: 0, PROCESSING: 0, COMPLETED: 0, FAILED: 0}
        for job in self._jobs.values():
            counts[job.status] += 1
        return {
            "totalJobs": len(self._jobs),
            **counts,
            "maxConcurrentJobs": self.max_concurrent_jobs,
        }

    async def _run(
        self,
        job: FinalizationJob,
        all_collected_routes: list[str] | None,
        pipeline_signature: PipelineSignature | None,
    ) -> None:
        async with self._slots:
            job.status = PROCESSING
            job.started_at = utcnow()
            job.progress = 10
            start = time.perf_counter()
            try:
                job.result = await self.coordinator.promote_session(
                    job.session_id, all_collected_routes, pipeline_signature
                )
            except Exception as exc:
                job.status = FAILED
                job.error = str(exc) or type(exc).__name__
                print(f"  [job] Finalization {job.job_id} failed: {job.error}", file=sys.stderr)
            else:
                job.status = COMPLETED
                job.progress = 100
                print(f"  [job] Finalization {job.job_id} completed")
            finally:
                job.completed_at = utcnow()
                job.duration = time.perf_counter() - start
