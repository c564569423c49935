from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from typing import Any, Callable

import jsonschema

from ..models import (
    DEFAULT_SUMMARY_TYPE,
    JOB_PRIORITY_MEDIUM,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    JOB_TYPE_SUMMARIZE,
    SUMMARY_STATUS_COMPLETED,
    Job,
    SummaryRequest,
)
from ..storage import new_job_id
from ..utils import json_dumps, log_event, utc_now_iso
from .summarizer import SummarizationEngine

DEFAULT_MAX_RETRIES = 3

SUMMARY_PAYLOAD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["article_id"],
    "properties": {
        "article_id": {"type": "string", "minLength": 1},
        "job_type": {"type": "string"},
        "options": {
            "type": "object",
            "properties": {"summary_type": {"type": "string"}},
        },
    },
}


class JobError(ValueError):
    """A job attempt failed; the job may be retried."""


class PermanentJobError(JobError):
    """A job can never succeed; it is failed without further retries."""


class PayloadDecodeError(PermanentJobError):
    pass


class UnknownJobTypeError(PermanentJobError):
    pass


class ArticleNotFoundError(JobError):
    pass


class JobService:
    def __init__(
        self,
        job_store,
        article_store,
        engine: SummarizationEngine,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        default_priority: int = JOB_PRIORITY_MEDIUM,
        logger: logging.Logger | None = None,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.job_store = job_store
        self.article_store = article_store
        self.engine = engine
        self.max_retries = max_retries
        self.default_priority = default_priority
        self.logger = logger or logging.getLogger("summarist.jobs")
        self.clock = clock

    def enqueue_summary_job(
        self,
        article_id: str,
        priority: int | None = None,
        summary_type: str = DEFAULT_SUMMARY_TYPE,
    ) -> Job:
        payload = {
            "article_id": article_id,
            "job_type": JOB_TYPE_SUMMARIZE,
            "options": {"summary_type": summary_type},
        }
        now = self.clock()
        job = Job(
            id=new_job_id(),
            job_type=JOB_TYPE_SUMMARIZE,
            priority=self.default_priority if priority is None else int(priority),
            status=JOB_STATUS_PENDING,
            payload=json_dumps(payload),
            retry_count=0,
            max_retries=self.max_retries,
            error_message=None,
            created_at=now,
            updated_at=now,
            started_at=None,
            completed_at=None,
        )
        self.job_store.create(job)
        log_event(
            self.logger,
            logging.INFO,
            "job_enqueued",
            job_id=job.id,
            job_type=job.job_type,
            article_id=article_id,
            priority=job.priority,
        )
        return job

    def get_next_job(self, worker_id: str) -> Job | None:
        return self.job_store.get_next_job(worker_id)

    def process_job(self, job: Job) -> None:
        payload = _decode_payload(job.payload)
        if job.job_type == JOB_TYPE_SUMMARIZE:
            self.process_summary_job(job, payload)
            return
        raise UnknownJobTypeError(f"unknown job type: {job.job_type}")

    def process_summary_job(self, job: Job, payload: dict[str, Any]) -> None:
        try:
            jsonschema.validate(payload, SUMMARY_PAYLOAD_SCHEMA)
        except jsonschema.ValidationError as exc:
            raise PayloadDecodeError(f"invalid job payload: {exc.message}") from exc
        article_id = payload["article_id"]
        article = self.article_store.get_by_id(article_id)
        if article is None:
            raise ArticleNotFoundError(f"article_not_found: {article_id}")
        if article.summary:
            log_event(
                self.logger,
                logging.INFO,
                "summary_skipped",
                job_id=job.id,
                article_id=article_id,
                reason="summary_exists",
            )
            return
        content = article.content or ""
        if not content.strip():
            raise JobError(f"missing_content: {article_id}")
        options = payload.get("options") or {}
        request = SummaryRequest(
            content=content,
            title=article.title,
            url=article.url,
            language=article.language,
            summary_type=str(options.get("summary_type") or DEFAULT_SUMMARY_TYPE),
        )
        response = self.engine.generate_summary(request)
        updated = replace(
            article,
            summary=response.summary,
            summary_generation_status=SUMMARY_STATUS_COMPLETED,
            summary_generated_at=response.generated_at,
            summary_model_version=response.model_version,
        )
        if not self.article_store.update(updated):
            raise JobError(f"article_update_failed: {article_id}")
        log_event(
            self.logger,
            logging.INFO,
            "summary_saved",
            job_id=job.id,
            article_id=article_id,
            provider=response.provider,
            model=response.model_version,
            confidence=response.confidence,
            word_count=response.word_count,
        )

    def process_job_with_retry(self, job: Job, worker_id: str = "worker") -> Job:
        if job.is_terminal:
            log_event(self.logger, logging.INFO, "job_already_terminal", job_id=job.id, status=job.status)
            return job
        if job.status != JOB_STATUS_PROCESSING:
            claimed = self.job_store.claim(job.id, worker_id)
            if claimed is None:
                log_event(self.logger, logging.INFO, "job_claim_lost", job_id=job.id, worker_id=worker_id)
                return self.job_store.get_by_id(job.id) or job
            job = claimed
        elif not job.started_at:
            job = self._persist(replace(job, started_at=self.clock()))
        log_event(
            self.logger,
            logging.INFO,
            "job_claimed",
            job_id=job.id,
            job_type=job.job_type,
            worker_id=worker_id,
            attempt=job.retry_count + 1,
        )

        try:
            self.process_job(job)
        except PermanentJobError as exc:
            job = replace(
                job,
                status=JOB_STATUS_FAILED,
                retry_count=min(job.retry_count + 1, job.max_retries),
                error_message=str(exc),
                completed_at=self.clock(),
            )
            log_event(
                self.logger,
                logging.ERROR,
                "job_failed",
                job_id=job.id,
                error=str(exc),
                retry_count=job.retry_count,
                permanent=True,
            )
        except Exception as exc:  # noqa: BLE001
            job = self._record_retryable_failure(job, str(exc))
        else:
            job = replace(
                job,
                status=JOB_STATUS_COMPLETED,
                completed_at=self.clock(),
            )
            log_event(self.logger, logging.INFO, "job_succeeded", job_id=job.id, worker_id=worker_id)

        return self._persist(job)

    def start_worker(
        self,
        worker_id: str,
        stop_event: threading.Event | None = None,
        **kwargs: Any,
    ) -> int:
        from ..worker import Worker

        worker = Worker(self, worker_id, stop_event=stop_event, **kwargs)
        return worker.run()

    def _record_retryable_failure(self, job: Job, error: str) -> Job:
        retry_count = min(job.retry_count + 1, job.max_retries)
        if retry_count < job.max_retries:
            job = replace(
                job,
                status=JOB_STATUS_PENDING,
                retry_count=retry_count,
                error_message=error,
                locked_by=None,
            )
            log_event(
                self.logger,
                logging.WARNING,
                "job_requeued",
                job_id=job.id,
                error=error,
                retry_count=retry_count,
                max_retries=job.max_retries,
            )
            return job
        job = replace(
            job,
            status=JOB_STATUS_FAILED,
            retry_count=retry_count,
            error_message=error,
            completed_at=self.clock(),
        )
        log_event(
            self.logger,
            logging.ERROR,
            "job_failed",
            job_id=job.id,
            error=error,
            retry_count=retry_count,
            permanent=False,
        )
        return job

    def _persist(self, job: Job) -> Job:
        job = replace(job, updated_at=self.clock())
        if not self.job_store.update(job):
            log_event(self.logger, logging.ERROR, "job_update_rejected", job_id=job.id, status=job.status)
            return self.job_store.get_by_id(job.id) or job
        return job


def _decode_payload(raw: str | None) -> dict[str, Any]:
    if not raw:
        raise PayloadDecodeError("failed to decode job payload: empty payload")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PayloadDecodeError(f"failed to decode job payload: {exc}") from exc
    if not isinstance(payload, dict):
        raise PayloadDecodeError("failed to decode job payload: expected an object")
    return payload
