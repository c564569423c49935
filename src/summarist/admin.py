from __future__ import annotations

import dataclasses
import logging
import os
from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel

from .config import ConfigError, load_config
from .models import DEFAULT_SUMMARY_TYPE, SUMMARY_TYPES, Job
from .services.job_service import JobService
from .utils import configure_logging, log_event
from .worker import build_service

app = FastAPI(title="summarist Admin API")


class SummarizeRequest(BaseModel):
    priority: int | None = None
    summary_type: str = DEFAULT_SUMMARY_TYPE


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("SM_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


@lru_cache(maxsize=1)
def get_service() -> JobService:
    try:
        config = load_config()
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return build_service(config, logger=logging.getLogger("summarist.admin"))


def job_to_dict(job: Job) -> dict[str, object]:
    return dataclasses.asdict(job)


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "summarist Admin API"}


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "ok": True,
        "version": _get_version(),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.get("/jobs", dependencies=[Depends(_require_admin_token)])
def jobs(limit: int = 20, service: JobService = Depends(get_service)) -> list[dict[str, object]]:
    return [job_to_dict(job) for job in service.job_store.list_jobs(limit=limit)]


@app.get("/jobs/pending", dependencies=[Depends(_require_admin_token)])
def jobs_pending(service: JobService = Depends(get_service)) -> list[dict[str, object]]:
    return [job_to_dict(job) for job in service.job_store.get_pending_jobs()]


@app.get("/jobs/{job_id}", dependencies=[Depends(_require_admin_token)])
def job_read(job_id: str, service: JobService = Depends(get_service)) -> dict[str, object]:
    job = service.job_store.get_by_id(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job_not_found")
    return job_to_dict(job)


@app.post("/articles/{article_id}/summarize", dependencies=[Depends(_require_admin_token)])
def article_summarize(
    article_id: str,
    payload: SummarizeRequest | None = None,
    service: JobService = Depends(get_service),
) -> dict[str, object]:
    payload = payload or SummarizeRequest()
    if payload.summary_type not in SUMMARY_TYPES:
        raise HTTPException(status_code=400, detail="invalid_summary_type")
    if service.article_store.get_by_id(article_id) is None:
        raise HTTPException(status_code=404, detail="article_not_found")
    job = service.enqueue_summary_job(
        article_id,
        priority=payload.priority,
        summary_type=payload.summary_type,
    )
    return job_to_dict(job)


def _setup_logging() -> logging.Logger:
    return configure_logging("summarist.admin")


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("summarist")
    except Exception:  # noqa: BLE001
        return "unknown"


def main() -> int:
    import uvicorn

    logger = _setup_logging()
    host = os.environ.get("SM_ADMIN_HOST", "127.0.0.1")
    port = int(os.environ.get("SM_ADMIN_PORT", "8080"))
    log_event(logger, logging.INFO, "admin_starting", host=host, port=port)
    uvicorn.run(app, host=host, port=port)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
