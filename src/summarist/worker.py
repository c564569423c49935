from __future__ import annotations

import argparse
import logging
import os
import signal
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from .config import Config, ConfigError, load_config
from .llm.providers import build_providers
from .services.job_service import JobService
from .services.summarizer import SummarizationEngine
from .storage import ArticleStore, JobStore
from .utils import configure_logging, log_event

POLL_PROCESSED = "processed"
POLL_IDLE = "idle"
POLL_ERROR = "error"

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_ERROR_INTERVAL = 1.0


def _setup_logging() -> logging.Logger:
    return configure_logging("summarist.worker")


class Worker:
    """Polls the job queue until its stop event is set.

    Cancellation is checked once per iteration, before polling. A job already
    being processed when the event fires runs to completion.
    """

    def __init__(
        self,
        service: JobService,
        worker_id: str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        error_interval: float = DEFAULT_ERROR_INTERVAL,
        stop_event: threading.Event | None = None,
        sleep: Callable[[float], object] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.service = service
        self.worker_id = worker_id
        self.poll_interval = poll_interval
        self.error_interval = error_interval
        self.stop_event = stop_event or threading.Event()
        # Event.wait returns early on stop, so idle workers shut down promptly.
        self.sleep = sleep or self.stop_event.wait
        self.logger = logger or logging.getLogger("summarist.worker")

    def stop(self) -> None:
        self.stop_event.set()

    def run_once(self) -> str:
        try:
            job = self.service.get_next_job(self.worker_id)
        except Exception as exc:  # noqa: BLE001
            log_event(
                self.logger,
                logging.WARNING,
                "worker_poll_error",
                worker_id=self.worker_id,
                error=str(exc),
            )
            return POLL_ERROR
        if job is None:
            return POLL_IDLE
        try:
            self.service.process_job_with_retry(job, self.worker_id)
        except Exception as exc:  # noqa: BLE001
            log_event(
                self.logger,
                logging.ERROR,
                "job_thread_error",
                worker_id=self.worker_id,
                job_id=job.id,
                error=str(exc),
            )
            return POLL_ERROR
        return POLL_PROCESSED

    def run(self) -> int:
        log_event(self.logger, logging.INFO, "worker_started", worker_id=self.worker_id)
        while not self.stop_event.is_set():
            outcome = self.run_once()
            if outcome == POLL_ERROR:
                self.sleep(self.error_interval)
            elif outcome == POLL_IDLE:
                self.sleep(self.poll_interval)
        log_event(self.logger, logging.INFO, "worker_stopped", worker_id=self.worker_id)
        return 0


def run_workers(
    service: JobService,
    count: int,
    stop_event: threading.Event,
    *,
    worker_id: str = "worker",
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    error_interval: float = DEFAULT_ERROR_INTERVAL,
) -> int:
    logger = logging.getLogger("summarist.worker")
    max_workers = max(1, count)
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="summarist-worker") as executor:
        futures = [
            executor.submit(
                service.start_worker,
                f"{worker_id}-{idx}",
                stop_event,
                poll_interval=poll_interval,
                error_interval=error_interval,
            )
            for idx in range(max_workers)
        ]
        exit_code = 0
        for future in futures:
            try:
                future.result()
            except Exception as exc:  # noqa: BLE001
                log_event(logger, logging.ERROR, "worker_crashed", error=str(exc))
                exit_code = 1
    return exit_code


def build_service(config: Config, logger: logging.Logger | None = None) -> JobService:
    engine = SummarizationEngine(
        build_providers(config.llm),
        max_tokens=config.llm.max_tokens,
        temperature=config.llm.temperature,
    )
    return JobService(
        JobStore(config.paths.state_db),
        ArticleStore(config.paths.state_db),
        engine,
        max_retries=config.jobs.max_retries,
        default_priority=config.jobs.default_priority,
        logger=logger,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="summarist-worker")
    parser.add_argument("--config", default=os.environ.get("SM_CONFIG_PATH"))
    parser.add_argument("--once", action="store_true", help="Process at most one job and exit")
    parser.add_argument("--workers", type=int, default=None, help="Number of polling workers")
    parser.add_argument("--poll", type=float, default=None, help="Idle seconds between empty polls")
    parser.add_argument("--error-sleep", type=float, default=None, help="Seconds to wait after a store error")
    parser.add_argument("--worker-id", default=os.environ.get("HOSTNAME", "worker"))
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logger = _setup_logging()
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1

    service = build_service(config)
    stop_event = threading.Event()
    poll_interval = args.poll if args.poll is not None else config.jobs.poll_interval_seconds
    error_interval = (
        args.error_sleep if args.error_sleep is not None else config.jobs.error_interval_seconds
    )
    if args.once:
        worker = Worker(service, args.worker_id, stop_event=stop_event, logger=logger)
        outcome = worker.run_once()
        return 1 if outcome == POLL_ERROR else 0

    def _request_stop(signum, _frame) -> None:
        log_event(logger, logging.INFO, "shutdown_requested", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    workers = args.workers if args.workers is not None else config.jobs.workers
    return run_workers(
        service,
        workers,
        stop_event,
        worker_id=args.worker_id,
        poll_interval=poll_interval,
        error_interval=error_interval,
    )


if __name__ == "__main__":
    raise SystemExit(main())
