from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from . import models
from .errors import NotFoundError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    status: models.JobState = models.JobState.PROCESSING
    strategy: str
    webhook_target: Optional[str] = None
    callback_headers: Dict[str, str] = Field(default_factory=dict)
    result: Optional[models.OcrResult] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status != models.JobState.PROCESSING

    def to_status(self) -> models.JobStatus:
        return models.JobStatus(
            job_id=self.id,
            status=self.status,
            result=self.result,
            error=self.error,
            created_at=self.created_at,
            completed_at=self.completed_at,
        )


class JobStore:
    """
    In-memory job table keyed by id.

    Request handlers may read from worker threads while the event loop
    writes completions, so every access goes through one lock and reads
    hand out deep copies.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Duplicate job id {job.id}")
            self._jobs[job.id] = job

    def get(self, job_id: str) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            return job.model_copy(deep=True)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def complete(self, job_id: str, result: models.OcrResult) -> Job:
        return self._finish(job_id, models.JobState.COMPLETED, result=result)

    def fail(self, job_id: str, error: str) -> Job:
        return self._finish(job_id, models.JobState.FAILED, error=error)

    def _finish(
        self,
        job_id: str,
        status: models.JobState,
        result: Optional[models.OcrResult] = None,
        error: Optional[str] = None,
    ) -> Job:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError(f"Job {job_id} not found")
            if job.is_terminal:
                raise RuntimeError(f"Job {job_id} is already {job.status.value}")
            job.status = status
            job.result = result
            job.error = error
            job.completed_at = _now()
            return job.model_copy(deep=True)

    def prune(self, retention_seconds: float) -> List[str]:
        """Drop terminal jobs that finished longer ago than the window."""
        cutoff = _now() - timedelta(seconds=retention_seconds)
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_terminal and job.completed_at and job.completed_at < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
        return expired
