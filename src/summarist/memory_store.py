from __future__ import annotations

import itertools
import threading
from dataclasses import replace

from .models import JOB_STATUS_PENDING, JOB_STATUS_PROCESSING, Article, Job
from .utils import utc_now_iso


class MemoryJobStore:
    """Process-local job store with the same claim semantics as the SQL store."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def create(self, job: Job) -> None:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"duplicate job id {job.id}")
            self._jobs[job.id] = job
            self._seq[job.id] = next(self._counter)

    def update(self, job: Job) -> bool:
        if job.retry_count > job.max_retries:
            raise ValueError("retry_count_exceeds_max_retries")
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None or current.is_terminal:
                return False
            self._jobs[job.id] = job
            return True

    def get_by_id(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def get_next_job(self, worker_id: str) -> Job | None:
        with self._lock:
            pending = self._pending_locked()
            if not pending:
                return None
            return self._claim_locked(pending[0], worker_id)

    def claim(self, job_id: str, worker_id: str) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JOB_STATUS_PENDING:
                return None
            return self._claim_locked(job, worker_id)

    def get_pending_jobs(self) -> list[Job]:
        with self._lock:
            return self._pending_locked()

    def list_jobs(self, limit: int = 50) -> list[Job]:
        with self._lock:
            jobs = sorted(
                self._jobs.values(), key=lambda job: (job.created_at, self._seq[job.id]), reverse=True
            )
        return jobs[:limit]

    def _pending_locked(self) -> list[Job]:
        pending = [job for job in self._jobs.values() if job.status == JOB_STATUS_PENDING]
        return sorted(pending, key=lambda job: (job.priority, job.created_at, self._seq[job.id]))

    def _claim_locked(self, job: Job, worker_id: str) -> Job:
        now = utc_now_iso()
        claimed = replace(
            job,
            status=JOB_STATUS_PROCESSING,
            locked_by=worker_id,
            started_at=job.started_at or now,
            updated_at=now,
        )
        self._jobs[job.id] = claimed
        return claimed


class MemoryArticleStore:
    def __init__(self, articles: list[Article] | None = None) -> None:
        self._articles: dict[str, Article] = {}
        self._lock = threading.Lock()
        for article in articles or []:
            self.create(article)

    def create(self, article: Article) -> None:
        with self._lock:
            self._articles[article.id] = article

    def get_by_id(self, article_id: str) -> Article | None:
        with self._lock:
            return self._articles.get(article_id)

    def update(self, article: Article) -> bool:
        with self._lock:
            if article.id not in self._articles:
                return False
            self._articles[article.id] = replace(article, updated_at=utc_now_iso())
            return True
