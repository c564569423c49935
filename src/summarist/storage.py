from __future__ import annotations

import threading
import uuid
from typing import Any

from .config import get_state_db_path
from .db import DBConn, connect_db
from .models import (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_PROCESSING,
    Article,
    Job,
)
from .utils import utc_now_iso

_JOB_COLUMNS = """
    id, job_type, priority, status, payload, max_retries, retry_count, error_message,
    created_at, updated_at, started_at, completed_at, locked_by
"""

_ARTICLE_COLUMNS = """
    id, url, title, content, language, summary, summary_generation_status,
    summary_generated_at, summary_model_version, created_at, updated_at
"""

# Jobs are never deleted, so the SQLite rowid grows with every insert.
_ENQUEUE_SEQ = {"sqlite": "rowid", "postgres": "seq"}


def _dequeue_order(conn: Any) -> str:
    return f"ORDER BY priority ASC, created_at ASC, {_ENQUEUE_SEQ[conn.backend]} ASC"


def init_db(path: str | None = None) -> DBConn:
    return connect_db(path or get_state_db_path())


def new_job_id() -> str:
    return f"job_{uuid.uuid4().hex}"


def insert_job(conn: Any, job: Job) -> None:
    conn.execute(
        """
        INSERT INTO jobs
            (id, job_type, priority, status, payload, max_retries, retry_count,
             error_message, created_at, updated_at, started_at, completed_at, locked_by)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            job.id,
            job.job_type,
            job.priority,
            job.status,
            job.payload,
            job.max_retries,
            job.retry_count,
            job.error_message,
            job.created_at,
            job.updated_at,
            job.started_at,
            job.completed_at,
            job.locked_by,
        ),
    )
    conn.commit()


def update_job(conn: Any, job: Job) -> bool:
    if job.retry_count > job.max_retries:
        raise ValueError("retry_count_exceeds_max_retries")
    cursor = conn.execute(
        """
        UPDATE jobs
        SET priority = ?, status = ?, payload = ?, max_retries = ?, retry_count = ?,
            error_message = ?, updated_at = ?, started_at = ?, completed_at = ?,
            locked_by = ?
        WHERE id = ? AND status NOT IN (?, ?)
        """,
        (
            job.priority,
            job.status,
            job.payload,
            job.max_retries,
            job.retry_count,
            job.error_message,
            job.updated_at,
            job.started_at,
            job.completed_at,
            job.locked_by,
            job.id,
            JOB_STATUS_COMPLETED,
            JOB_STATUS_FAILED,
        ),
    )
    conn.commit()
    return cursor.rowcount == 1


def get_job(conn: Any, job_id: str) -> Job | None:
    row = conn.execute(
        f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?",
        (job_id,),
    ).fetchone()
    return _row_to_job(row) if row else None


def list_pending_jobs(conn: Any) -> list[Job]:
    cursor = conn.execute(
        f"SELECT {_JOB_COLUMNS} FROM jobs WHERE status = ? {_dequeue_order(conn)}",
        (JOB_STATUS_PENDING,),
    )
    return [_row_to_job(row) for row in cursor.fetchall()]


def list_jobs(conn: Any, limit: int = 50) -> list[Job]:
    cursor = conn.execute(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM jobs
        ORDER BY created_at DESC, {_ENQUEUE_SEQ[conn.backend]} DESC
        LIMIT ?
        """,
        (limit,),
    )
    return [_row_to_job(row) for row in cursor.fetchall()]


def claim_next_job(conn: Any, worker_id: str) -> Job | None:
    lock_clause = " FOR UPDATE SKIP LOCKED" if conn.backend == "postgres" else ""
    with conn.transaction():
        row = conn.execute(
            f"""
            SELECT id FROM jobs
            WHERE status = ?
            {_dequeue_order(conn)}
            LIMIT 1{lock_clause}
            """,
            (JOB_STATUS_PENDING,),
        ).fetchone()
        if not row:
            return None
        if not _mark_claimed(conn, row[0], worker_id):
            return None
        claimed = conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?",
            (row[0],),
        ).fetchone()
    return _row_to_job(claimed)


def claim_job(conn: Any, job_id: str, worker_id: str) -> Job | None:
    with conn.transaction():
        if not _mark_claimed(conn, job_id, worker_id):
            return None
        claimed = conn.execute(
            f"SELECT {_JOB_COLUMNS} FROM jobs WHERE id = ?",
            (job_id,),
        ).fetchone()
    return _row_to_job(claimed)


def _mark_claimed(conn: Any, job_id: str, worker_id: str) -> bool:
    now = utc_now_iso()
    cursor = conn.execute(
        """
        UPDATE jobs
        SET status = ?, locked_by = ?, started_at = COALESCE(started_at, ?), updated_at = ?
        WHERE id = ? AND status = ?
        """,
        (JOB_STATUS_PROCESSING, worker_id, now, now, job_id, JOB_STATUS_PENDING),
    )
    return cursor.rowcount == 1


def insert_article(conn: Any, article: Article) -> None:
    conn.execute(
        f"""
        INSERT INTO articles ({_ARTICLE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            article.id,
            article.url,
            article.title,
            article.content,
            article.language,
            article.summary,
            article.summary_generation_status,
            article.summary_generated_at,
            article.summary_model_version,
            article.created_at,
            article.updated_at,
        ),
    )
    conn.commit()


def get_article_by_id(conn: Any, article_id: str) -> Article | None:
    row = conn.execute(
        f"SELECT {_ARTICLE_COLUMNS} FROM articles WHERE id = ?",
        (article_id,),
    ).fetchone()
    return _row_to_article(row) if row else None


def update_article_summary(conn: Any, article: Article) -> bool:
    cursor = conn.execute(
        """
        UPDATE articles
        SET summary = ?, summary_generation_status = ?, summary_generated_at = ?,
            summary_model_version = ?, updated_at = ?
        WHERE id = ?
        """,
        (
            article.summary,
            article.summary_generation_status,
            article.summary_generated_at,
            article.summary_model_version,
            utc_now_iso(),
            article.id,
        ),
    )
    conn.commit()
    return cursor.rowcount == 1


class _ThreadLocalStore:
    """Holds one connection per thread; sqlite3 connections are not shared across workers."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or get_state_db_path()
        self._local = threading.local()

    def _conn(self) -> DBConn:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = connect_db(self.db_path)
            self._local.conn = conn
        return conn

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None


class JobStore(_ThreadLocalStore):
    def create(self, job: Job) -> None:
        insert_job(self._conn(), job)

    def update(self, job: Job) -> bool:
        return update_job(self._conn(), job)

    def get_by_id(self, job_id: str) -> Job | None:
        return get_job(self._conn(), job_id)

    def get_next_job(self, worker_id: str) -> Job | None:
        return claim_next_job(self._conn(), worker_id)

    def claim(self, job_id: str, worker_id: str) -> Job | None:
        return claim_job(self._conn(), job_id, worker_id)

    def get_pending_jobs(self) -> list[Job]:
        return list_pending_jobs(self._conn())

    def list_jobs(self, limit: int = 50) -> list[Job]:
        return list_jobs(self._conn(), limit=limit)


class ArticleStore(_ThreadLocalStore):
    def create(self, article: Article) -> None:
        insert_article(self._conn(), article)

    def get_by_id(self, article_id: str) -> Article | None:
        return get_article_by_id(self._conn(), article_id)

    def update(self, article: Article) -> bool:
        return update_article_summary(self._conn(), article)


def _row_to_job(row: tuple) -> Job:
    (
        job_id,
        job_type,
        priority,
        status,
        payload,
        max_retries,
        retry_count,
        error_message,
        created_at,
        updated_at,
        started_at,
        completed_at,
        locked_by,
    ) = row
    return Job(
        id=job_id,
        job_type=job_type,
        priority=int(priority),
        status=status,
        payload=payload,
        retry_count=int(retry_count),
        max_retries=int(max_retries),
        error_message=error_message,
        created_at=created_at,
        updated_at=updated_at,
        started_at=started_at,
        completed_at=completed_at,
        locked_by=locked_by,
    )


def _row_to_article(row: tuple) -> Article:
    (
        article_id,
        url,
        title,
        content,
        language,
        summary,
        summary_generation_status,
        summary_generated_at,
        summary_model_version,
        created_at,
        updated_at,
    ) = row
    return Article(
        id=article_id,
        url=url,
        title=title,
        content=content,
        language=language,
        summary=summary,
        summary_generation_status=summary_generation_status,
        summary_generated_at=summary_generated_at,
        summary_model_version=summary_model_version,
        created_at=created_at,
        updated_at=updated_at,
    )
