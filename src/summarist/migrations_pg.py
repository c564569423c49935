from __future__ import annotations

import logging

from .utils import utc_now_iso


def apply_migrations_pg(conn) -> None:
    logger = logging.getLogger("summarist.migrations")
    with conn.transaction():
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
            """
        )
        applied = {
            row[0]
            for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
        }
        for version, migration in _get_migrations_pg():
            if version in applied:
                logger.debug("migration_skipped version=%s", version)
                continue
            migration(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (%s, %s)",
                (version, utc_now_iso()),
            )
            logger.info("migration_applied version=%s", version)


def _bootstrap_schema(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS articles (
            id TEXT PRIMARY KEY,
            url TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NULL,
            language TEXT NOT NULL DEFAULT 'ja',
            summary TEXT NULL,
            summary_generation_status TEXT NOT NULL DEFAULT 'pending',
            summary_generated_at TEXT NULL,
            summary_model_version TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id TEXT PRIMARY KEY,
            job_type TEXT NOT NULL,
            priority INTEGER NOT NULL DEFAULT 5,
            status TEXT NOT NULL DEFAULT 'pending',
            payload TEXT NULL,
            max_retries INTEGER NOT NULL DEFAULT 3,
            retry_count INTEGER NOT NULL DEFAULT 0,
            error_message TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            started_at TEXT NULL,
            completed_at TEXT NULL,
            locked_by TEXT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_dequeue ON jobs(status, priority, created_at)"
    )


def _jobs_enqueue_seq(conn) -> None:
    conn.execute("ALTER TABLE jobs ADD COLUMN IF NOT EXISTS seq BIGSERIAL")
    conn.execute("DROP INDEX IF EXISTS idx_jobs_dequeue")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_jobs_dequeue ON jobs(status, priority, created_at, seq)"
    )


def _get_migrations_pg():
    return [
        ("pg_bootstrap_001", _bootstrap_schema),
        ("pg_jobs_enqueue_seq_002", _jobs_enqueue_seq),
    ]
