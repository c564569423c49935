from __future__ import annotations

from dataclasses import dataclass

JOB_STATUS_PENDING = "pending"
JOB_STATUS_PROCESSING = "processing"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

TERMINAL_JOB_STATUSES = frozenset({JOB_STATUS_COMPLETED, JOB_STATUS_FAILED})

JOB_TYPE_SUMMARIZE = "summarize"

JOB_PRIORITY_HIGH = 1
JOB_PRIORITY_MEDIUM = 5
JOB_PRIORITY_LOW = 10

SUMMARY_STATUS_PENDING = "pending"
SUMMARY_STATUS_PROCESSING = "processing"
SUMMARY_STATUS_COMPLETED = "completed"
SUMMARY_STATUS_FAILED = "failed"

SUMMARY_TYPES = ("short", "medium", "long")
DEFAULT_SUMMARY_TYPE = "medium"


@dataclass(frozen=True)
class Job:
    id: str
    job_type: str
    priority: int
    status: str
    payload: str | None
    retry_count: int
    max_retries: int
    error_message: str | None
    created_at: str
    updated_at: str
    started_at: str | None
    completed_at: str | None
    locked_by: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass(frozen=True)
class Article:
    id: str
    url: str
    title: str
    content: str | None
    language: str
    summary: str | None
    summary_generation_status: str
    summary_generated_at: str | None
    summary_model_version: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SummaryRequest:
    content: str
    title: str
    url: str
    language: str
    summary_type: str = DEFAULT_SUMMARY_TYPE


@dataclass(frozen=True)
class SummaryResponse:
    summary: str
    confidence: float
    provider: str
    model_version: str
    generated_at: str
    word_count: int
