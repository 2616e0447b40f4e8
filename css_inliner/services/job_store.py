"""In-memory registry of render jobs."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Mapping
from threading import Lock
from typing import Optional

from css_inliner.models.job import JobMetadata, JobStatus

MAX_JOBS = 1000


class InMemoryJobStore:
    """Thread-safe job registry bounded to ``max_jobs`` entries.

    When full, the oldest finished job is dropped to make room.
    """

    def __init__(self, max_jobs: int = MAX_JOBS) -> None:
        self._lock = Lock()
        self._jobs: "OrderedDict[str, JobMetadata]" = OrderedDict()
        self.max_jobs = max_jobs

    def create_job(self, job: JobMetadata) -> None:
        with self._lock:
            self._jobs[job.job_id] = job
            self._evict()

    def update_job(self, job_id: str, job: JobMetadata) -> None:
        with self._lock:
            if job_id not in self._jobs:
                raise KeyError(f"Job {job_id} not found")
            self._jobs[job_id] = job

    def get_job(self, job_id: str) -> Optional[JobMetadata]:
        with self._lock:
            return self._jobs.get(job_id)

    def all_jobs(self) -> Mapping[str, JobMetadata]:
        with self._lock:
            return dict(self._jobs)

    def _evict(self) -> None:
        overflow = len(self._jobs) - self.max_jobs
        if overflow <= 0:
            return
        finished = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status in (JobStatus.completed, JobStatus.failed)
        ]
        for job_id in finished[:overflow]:
            del self._jobs[job_id]


job_store = InMemoryJobStore()


def _require(job_id: str) -> JobMetadata:
    job = job_store.get_job(job_id)
    if not job:
        raise KeyError(f"Job {job_id} not found")
    return job


def create_job(job_id: str, job_type: str, payload: dict) -> JobMetadata:
    """Register a new job in queued state."""

    job = JobMetadata(job_id=job_id, job_type=job_type, status=JobStatus.queued, payload=payload)
    job_store.create_job(job)
    return job


def mark_processing(job_id: str) -> JobMetadata:
    """Mark job as in-flight."""

    updated = _require(job_id).with_status(JobStatus.processing)
    job_store.update_job(job_id, updated)
    return updated


def mark_completed(job_id: str, result: dict) -> JobMetadata:
    """Mark job as completed with result."""

    updated = _require(job_id).with_result(result)
    job_store.update_job(job_id, updated)
    return updated


def mark_failed(job_id: str, message: str, kind: Optional[str] = None) -> JobMetadata:
    """Mark job as failed."""

    updated = _require(job_id).with_error(message, kind)
    job_store.update_job(job_id, updated)
    return updated
