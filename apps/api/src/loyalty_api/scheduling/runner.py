"""APScheduler runtime for recurring ledger jobs."""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from importlib import import_module
from pathlib import Path
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from loyalty_api.db.session import SessionFactory
from loyalty_api.observability.scheduler import get_scheduler_store

from .config import JobDefinition, ScheduleConfig, load_job_definitions


class LedgerJobScheduler:
    """Register cron-triggered ledger jobs and run them with retries."""

    # meta: scheduler: points-ledger

    def __init__(self, *, session_factory: SessionFactory, config_path: Path) -> None:
        self._session_factory = session_factory
        self._config_path = config_path
        self._config: ScheduleConfig | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._observability = get_scheduler_store()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        config = load_job_definitions(self._config_path)
        timezone = ZoneInfo(config.timezone)
        scheduler = AsyncIOScheduler(timezone=timezone)

        for job in config.jobs:
            if not job.enabled:
                logger.info("Skipping disabled ledger job", job_id=job.id)
                continue
            trigger = CronTrigger.from_crontab(job.cron, timezone=timezone)
            scheduler.add_job(
                self.build_runner(job),
                trigger=trigger,
                id=job.id,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            logger.info("Registered ledger job", job_id=job.id, task=job.task, cron=job.cron)

        scheduler.start()
        self._config = config
        self._scheduler = scheduler
        logger.info("Ledger job scheduler started", jobs=len(config.jobs), timezone=config.timezone)

    async def stop(self) -> None:
        if self._scheduler is None:
            return
        result = self._scheduler.shutdown(wait=False)
        if inspect.isawaitable(result):
            await result
        self._scheduler = None
        logger.info("Ledger job scheduler stopped")

    def build_runner(self, job: JobDefinition) -> Callable[[], Awaitable[Any]]:
        """Bind a job to its task callable with retry and metrics around it."""

        func = resolve_task(job.task)

        async def _runner() -> Any:
            policy = job.retry
            self._observability.record_dispatch(job.id, job.task)
            started_at = time.perf_counter()

            for attempt in range(1, policy.max_attempts + 1):
                try:
                    result = await func(session_factory=self._session_factory, **job.kwargs)
                except Exception as exc:
                    error = str(exc) or exc.__class__.__name__
                    self._observability.record_attempt_failure(job.id, job.task, attempts=attempt, error=error)
                    if attempt >= policy.max_attempts:
                        self._observability.record_run_failure(
                            job.id,
                            job.task,
                            runtime_seconds=time.perf_counter() - started_at,
                            attempts=attempt,
                        )
                        logger.exception(
                            "Scheduled ledger job failed after retries",
                            job_id=job.id,
                            attempts=attempt,
                        )
                        return None

                    delay = policy.delay_for(attempt)
                    if policy.jitter_seconds:
                        delay += random.uniform(0, policy.jitter_seconds)
                    self._observability.record_retry(job.id, job.task, attempts=attempt + 1)
                    logger.warning(
                        "Scheduled ledger job retrying",
                        job_id=job.id,
                        attempt=attempt + 1,
                        delay_seconds=delay,
                    )
                    if delay:
                        await asyncio.sleep(delay)
                    continue

                runtime_seconds = time.perf_counter() - started_at
                self._observability.record_success(
                    job.id,
                    job.task,
                    runtime_seconds=runtime_seconds,
                    attempts=attempt,
                    summary=result if isinstance(result, dict) else None,
                )
                logger.info(
                    "Scheduled ledger job completed",
                    job_id=job.id,
                    attempts=attempt,
                    runtime_seconds=runtime_seconds,
                )
                return result
            return None

        return _runner

    def health(self) -> dict[str, object]:
        snapshot = self._observability.snapshot()
        jobs = self._config.jobs if self._config else []
        return {
            "running": self.is_running,
            "configured_jobs": len(jobs),
            "totals": snapshot.totals,
            "jobs": [
                {
                    "id": job.id,
                    "task": job.task,
                    "cron": job.cron,
                    "enabled": job.enabled,
                    "max_attempts": job.retry.max_attempts,
                    "metrics": snapshot.jobs[job.id].as_dict() if job.id in snapshot.jobs else None,
                }
                for job in jobs
            ],
        }


def resolve_task(path: str) -> Callable[..., Awaitable[Any]]:
    module_name, _, attr = path.rpartition(".")
    if not module_name:
        raise ValueError(f"Invalid task path: {path}")
    func = getattr(import_module(module_name), attr, None)
    if func is None:
        raise AttributeError(f"Task {path} not found")
    if not inspect.iscoroutinefunction(func):
        raise TypeError(f"Task {path} must be an async function")
    return func


__all__ = ["LedgerJobScheduler", "resolve_task"]
