"""Observability store for ledger job scheduler metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class ScheduledJobState:
    job_id: str
    task: str
    counters: Dict[str, int] = field(
        default_factory=lambda: {
            "runs": 0,
            "success": 0,
            "run_failures": 0,
            "attempt_failures": 0,
            "retries": 0,
        }
    )
    total_runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0
    last_summary: Dict[str, object] | None = None

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": dict(self.counters),
            "total_runtime_seconds": self.total_runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
            "last_summary": self.last_summary,
        }


@dataclass
class SchedulerSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, ScheduledJobState]

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "jobs": {job_id: state.as_dict() for job_id, state in self.jobs.items()},
        }


class SchedulerObservabilityStore:
    """Tracks dispatches, retries and outcomes of scheduled ledger jobs."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, ScheduledJobState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _state(self, job_id: str, task: str) -> ScheduledJobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = self._jobs[job_id] = ScheduledJobState(job_id=job_id, task=task)
        return state

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["runs"] += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["attempt_failures"] += 1
            state.last_attempts = attempts
            state.last_error = error
            state.last_error_at = _utcnow()

    def record_retry(self, job_id: str, task: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["retries"] += 1
            state.last_attempts = attempts

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        attempts: int,
        summary: Dict[str, object] | None = None,
    ) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["success"] += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_success_at = _utcnow()
            state.last_attempts = attempts
            state.last_summary = summary
            state.last_error = None

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.counters["run_failures"] += 1
            state.total_runtime_seconds += runtime_seconds
            state.last_attempts = attempts

    def snapshot(self) -> SchedulerSnapshot:
        with self._lock:
            totals: Dict[str, int] = {}
            for state in self._jobs.values():
                for name, value in state.counters.items():
                    totals[name] = totals.get(name, 0) + value
            jobs = {
                job_id: ScheduledJobState(
                    job_id=state.job_id,
                    task=state.task,
                    counters=dict(state.counters),
                    total_runtime_seconds=state.total_runtime_seconds,
                    last_started_at=state.last_started_at,
                    last_success_at=state.last_success_at,
                    last_error_at=state.last_error_at,
                    last_error=state.last_error,
                    last_attempts=state.last_attempts,
                    last_summary=state.last_summary,
                )
                for job_id, state in self._jobs.items()
            }
        return SchedulerSnapshot(totals=totals, jobs=jobs)


_SCHEDULER_STORE = SchedulerObservabilityStore()


def get_scheduler_store() -> SchedulerObservabilityStore:
    return _SCHEDULER_STORE


__all__ = ["SchedulerObservabilityStore", "SchedulerSnapshot", "get_scheduler_store"]
