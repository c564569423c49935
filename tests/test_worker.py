import threading

import pytest

from summarist.memory_store import MemoryArticleStore, MemoryJobStore
from summarist.models import Job
from summarist.services.job_service import JobService
from summarist.services.summarizer import SummarizationEngine
from summarist.storage import JobStore
from summarist.worker import POLL_ERROR, POLL_IDLE, POLL_PROCESSED, Worker, build_parser, run_workers


def _job(job_id):
    return Job(
        id=job_id,
        job_type="summarize",
        priority=5,
        status="processing",
        payload='{"article_id": "article-1"}',
        retry_count=0,
        max_retries=3,
        error_message=None,
        created_at="2025-01-01T00:00:00+00:00",
        updated_at="2025-01-01T00:00:00+00:00",
        started_at="2025-01-01T00:00:01+00:00",
        completed_at=None,
        locked_by="worker-1",
    )


class ScriptedService:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.polls = 0
        self.processed = []

    def get_next_job(self, worker_id):
        self.polls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def process_job_with_retry(self, job, worker_id):
        self.processed.append((job, worker_id))
        return job


class RecordingStore:
    """Delegates to a real store and records every job it hands out."""

    def __init__(self, inner):
        self.inner = inner
        self.claimed = []
        self._lock = threading.Lock()

    def get_next_job(self, worker_id):
        job = self.inner.get_next_job(worker_id)
        if job is not None:
            with self._lock:
                self.claimed.append(job.id)
        return job

    def __getattr__(self, name):
        return getattr(self.inner, name)


def test_stop_before_run_never_polls():
    service = ScriptedService([])
    stop_event = threading.Event()
    stop_event.set()

    assert Worker(service, "worker-1", stop_event=stop_event).run() == 0
    assert service.polls == 0


def test_sleeps_follow_poll_outcome():
    service = ScriptedService([RuntimeError("database is locked"), None, _job("job-1")])
    stop_event = threading.Event()
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            stop_event.set()

    worker = Worker(
        service,
        "worker-1",
        poll_interval=5.0,
        error_interval=1.0,
        stop_event=stop_event,
        sleep=fake_sleep,
    )

    assert worker.run() == 0
    assert sleeps == [1.0, 5.0, 5.0]
    assert service.processed == [(_job("job-1"), "worker-1")]
    assert service.polls == 4


def test_run_once_outcomes():
    service = ScriptedService([RuntimeError("boom"), None, _job("job-1")])
    worker = Worker(service, "worker-1")

    assert [worker.run_once() for _ in range(3)] == [POLL_ERROR, POLL_IDLE, POLL_PROCESSED]


def test_processing_error_uses_error_interval():
    class ExplodingService(ScriptedService):
        def process_job_with_retry(self, job, worker_id):
            raise RuntimeError("store went away")

    stop_event = threading.Event()
    sleeps = []

    def fake_sleep(seconds):
        sleeps.append(seconds)
        stop_event.set()

    service = ExplodingService([_job("job-1")])
    worker = Worker(service, "worker-1", stop_event=stop_event, sleep=fake_sleep)

    assert worker.run() == 0
    assert sleeps == [1.0]
    assert service.polls == 1


@pytest.mark.parametrize("backend", ["sqlite", "memory"])
def test_concurrent_workers_claim_each_job_once(backend, db_path, fake_provider, make_article):
    inner = JobStore(db_path) if backend == "sqlite" else MemoryJobStore()
    store = RecordingStore(inner)
    articles = [make_article(f"article-{idx}") for idx in range(12)]
    provider = fake_provider("groq", text="A concise summary of the article for the reader.")
    service = JobService(store, MemoryArticleStore(articles), SummarizationEngine([provider]))
    jobs = [service.enqueue_summary_job(article.id) for article in articles]
    stop_event = threading.Event()

    def idle_sleep(_seconds):
        stop_event.set()

    workers = [
        Worker(service, f"worker-{idx}", stop_event=stop_event, sleep=idle_sleep)
        for idx in range(4)
    ]
    threads = [threading.Thread(target=worker.run) for worker in workers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert not any(thread.is_alive() for thread in threads)
    assert sorted(store.claimed) == sorted(job.id for job in jobs)
    assert len(provider.calls) == len(jobs)
    assert all(inner.get_by_id(job.id).status == "completed" for job in jobs)
    assert inner.get_pending_jobs() == []


def test_start_worker_runs_until_stopped(build_job_service, fake_provider):
    service = build_job_service([fake_provider("groq", text="x" * 80)])
    job = service.enqueue_summary_job("article-1")
    stop_event = threading.Event()

    def idle_sleep(_seconds):
        stop_event.set()

    assert service.start_worker("worker-1", stop_event, sleep=idle_sleep) == 0
    assert service.job_store.get_by_id(job.id).status == "completed"


def test_run_workers_returns_when_stopped(build_job_service, fake_provider):
    service = build_job_service([fake_provider("groq", text="x" * 80)])
    stop_event = threading.Event()
    stop_event.set()

    assert run_workers(service, 3, stop_event) == 0


def test_parser_defaults():
    args = build_parser().parse_args(["--workers", "3", "--poll", "0.5", "--once"])

    assert args.workers == 3
    assert args.poll == 0.5
    assert args.once is True
    assert args.error_sleep is None
