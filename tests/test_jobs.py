from dataclasses import replace

import pytest

from summarist.models import Job
from summarist.storage import JobStore


def _job(job_id, priority=5, created_at="2025-01-01T00:00:00+00:00", **overrides):
    fields = {
        "id": job_id,
        "job_type": "summarize",
        "priority": priority,
        "status": "pending",
        "payload": '{"article_id": "article-1"}',
        "retry_count": 0,
        "max_retries": 3,
        "error_message": None,
        "created_at": created_at,
        "updated_at": created_at,
        "started_at": None,
        "completed_at": None,
    }
    fields.update(overrides)
    return Job(**fields)


def test_enqueue_and_claim_job(job_store):
    job_store.create(_job("job-1"))

    claimed = job_store.get_next_job("worker-1")

    assert claimed is not None
    assert claimed.id == "job-1"
    assert claimed.status == "processing"
    assert claimed.locked_by == "worker-1"
    assert claimed.started_at is not None
    assert job_store.get_by_id("job-1").status == "processing"
    assert job_store.get_next_job("worker-2") is None


def test_claim_is_visible_to_other_connections(db_path):
    first = JobStore(db_path)
    second = JobStore(db_path)
    first.create(_job("job-1"))

    assert first.get_next_job("worker-1") is not None
    assert second.get_next_job("worker-2") is None


def test_get_next_job_returns_none_when_empty(job_store):
    assert job_store.get_next_job("worker-1") is None


def test_lower_priority_number_served_first(job_store):
    job_store.create(_job("job-low", priority=5, created_at="2025-01-01T00:00:00+00:00"))
    job_store.create(_job("job-high", priority=1, created_at="2025-01-01T00:00:05+00:00"))

    assert job_store.get_next_job("worker-1").id == "job-high"
    assert job_store.get_next_job("worker-1").id == "job-low"


def test_equal_priority_served_by_creation_time(job_store):
    job_store.create(_job("job-later", created_at="2025-01-01T00:00:09+00:00"))
    job_store.create(_job("job-earlier", created_at="2025-01-01T00:00:01+00:00"))

    assert job_store.get_next_job("worker-1").id == "job-earlier"
    assert job_store.get_next_job("worker-1").id == "job-later"


def test_get_pending_jobs_in_dequeue_order(job_store):
    job_store.create(_job("job-c", priority=10, created_at="2025-01-01T00:00:00+00:00"))
    job_store.create(_job("job-b", priority=5, created_at="2025-01-01T00:00:02+00:00"))
    job_store.create(_job("job-a", priority=5, created_at="2025-01-01T00:00:01+00:00"))
    job_store.create(_job("job-done", priority=1, status="completed"))

    pending = job_store.get_pending_jobs()

    assert [job.id for job in pending] == ["job-a", "job-b", "job-c"]


def test_update_persists_mutable_fields(job_store):
    job_store.create(_job("job-1"))
    claimed = job_store.get_next_job("worker-1")

    requeued = replace(
        claimed, status="pending", retry_count=1, error_message="boom", locked_by=None
    )
    assert job_store.update(requeued) is True

    stored = job_store.get_by_id("job-1")
    assert stored.status == "pending"
    assert stored.retry_count == 1
    assert stored.error_message == "boom"
    assert stored.locked_by is None


def test_started_at_survives_reclaim(job_store):
    job_store.create(_job("job-1"))
    first = job_store.get_next_job("worker-1")
    job_store.update(replace(first, status="pending", retry_count=1, locked_by=None))

    second = job_store.get_next_job("worker-2")

    assert second.started_at == first.started_at
    assert second.locked_by == "worker-2"


@pytest.mark.parametrize("terminal", ["completed", "failed"])
def test_terminal_job_rejects_update(job_store, terminal):
    job_store.create(_job("job-1"))
    claimed = job_store.get_next_job("worker-1")
    finished = replace(claimed, status=terminal, completed_at="2025-01-01T00:01:00+00:00")
    assert job_store.update(finished) is True

    assert job_store.update(replace(finished, status="pending", error_message="late")) is False

    stored = job_store.get_by_id("job-1")
    assert stored.status == terminal
    assert stored.error_message is None
    assert stored.completed_at == "2025-01-01T00:01:00+00:00"


def test_update_rejects_retry_count_over_budget(job_store):
    job_store.create(_job("job-1"))
    with pytest.raises(ValueError, match="retry_count_exceeds_max_retries"):
        job_store.update(_job("job-1", retry_count=4))


def test_claim_specific_job_only_when_pending(job_store):
    job_store.create(_job("job-1"))

    claimed = job_store.claim("job-1", "worker-1")

    assert claimed is not None
    assert claimed.status == "processing"
    assert job_store.claim("job-1", "worker-2") is None
    assert job_store.claim("missing", "worker-2") is None


def test_list_jobs_most_recent_first(job_store):
    job_store.create(_job("job-1", created_at="2025-01-01T00:00:01+00:00"))
    job_store.create(_job("job-2", created_at="2025-01-01T00:00:02+00:00"))

    jobs = job_store.list_jobs(limit=1)

    assert [job.id for job in jobs] == ["job-2"]


def test_equal_created_at_served_in_insertion_order(job_store):
    for job_id in ["job-z", "job-m", "job-a"]:
        job_store.create(_job(job_id))

    assert [job.id for job in job_store.get_pending_jobs()] == ["job-z", "job-m", "job-a"]
    assert job_store.get_next_job("worker-1").id == "job-z"
    assert job_store.list_jobs()[0].id == "job-a"
