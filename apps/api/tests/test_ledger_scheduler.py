from pathlib import Path

import pytest

from loyalty_api.observability.scheduler import get_scheduler_store
from loyalty_api.scheduling import runner as runner_module
from loyalty_api.scheduling.config import JobDefinition, RetryPolicy, ScheduleConfig, load_job_definitions
from loyalty_api.scheduling.runner import LedgerJobScheduler, resolve_task

SCHEDULES_PATH = Path(__file__).resolve().parents[1] / "config" / "schedules.toml"


def _no_wait(max_attempts: int) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=max_attempts,
        base_backoff_seconds=0.0,
        backoff_multiplier=1.0,
        max_backoff_seconds=0.0,
        jitter_seconds=0.0,
    )


@pytest.mark.asyncio
async def test_scheduler_retries_and_records_metrics(tmp_path: Path, monkeypatch) -> None:
    attempts = 0

    async def flaky_job(*, session_factory) -> dict:
        nonlocal attempts
        attempts += 1
        if attempts < 2:
            raise RuntimeError("boom")
        return {"expired_batch_count": 4}

    monkeypatch.setattr(runner_module, "resolve_task", lambda path: flaky_job)
    scheduler = LedgerJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    job = JobDefinition(id="job-alpha", task="tests.flaky", cron="* * * * *", retry=_no_wait(3))

    result = await scheduler.build_runner(job)()

    assert result == {"expired_batch_count": 4}
    snapshot = get_scheduler_store().snapshot()
    assert snapshot.totals["runs"] == 1
    assert snapshot.totals["success"] == 1
    assert snapshot.totals["attempt_failures"] == 1
    assert snapshot.totals["retries"] == 1
    job_snapshot = snapshot.jobs[job.id]
    assert job_snapshot.last_success_at is not None
    assert job_snapshot.last_error is None
    assert job_snapshot.last_summary == {"expired_batch_count": 4}
    assert attempts == 2


@pytest.mark.asyncio
async def test_scheduler_records_final_failure(tmp_path: Path, monkeypatch) -> None:
    async def failing_job(*, session_factory) -> None:
        raise RuntimeError("boom")

    monkeypatch.setattr(runner_module, "resolve_task", lambda path: failing_job)
    scheduler = LedgerJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    job = JobDefinition(id="job-failure", task="tests.failing", cron="* * * * *", retry=_no_wait(2))

    assert await scheduler.build_runner(job)() is None

    snapshot = get_scheduler_store().snapshot()
    assert snapshot.totals["run_failures"] == 1
    job_snapshot = snapshot.jobs[job.id]
    assert job_snapshot.counters["attempt_failures"] == 2
    assert job_snapshot.last_error == "boom"
    assert job_snapshot.last_error_at is not None


@pytest.mark.asyncio
async def test_scheduler_health_snapshot(tmp_path: Path, monkeypatch) -> None:
    async def successful_job(*, session_factory) -> None:
        return None

    monkeypatch.setattr(runner_module, "resolve_task", lambda path: successful_job)
    scheduler = LedgerJobScheduler(session_factory=lambda: None, config_path=tmp_path / "noop.toml")
    job = JobDefinition(id="job-health", task="tests.success", cron="* * * * *", retry=_no_wait(1))

    await scheduler.build_runner(job)()
    scheduler._config = ScheduleConfig(timezone="UTC", jobs=[job])

    health = scheduler.health()
    assert health["running"] is False
    assert health["configured_jobs"] == 1
    assert health["totals"]["runs"] == 1
    assert health["jobs"][0]["metrics"]["totals"]["runs"] == 1
    assert health["jobs"][0]["metrics"]["last_success_at"] is not None


def test_load_job_definitions_parses_retry_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "schedules.toml"
    config_path.write_text(
        """
        timezone = "Asia/Kolkata"

        [jobs.sample]
        task = "module.task"
        cron = "*/5 * * * *"
        enabled = false
        max_attempts = 5
        base_backoff_seconds = 2
        backoff_multiplier = 3
        max_backoff_seconds = 30
        jitter_seconds = 1.5

        [jobs.incomplete]
        task = "module.other"
        """
    )

    config = load_job_definitions(config_path)
    assert config.timezone == "Asia/Kolkata"
    assert len(config.jobs) == 1
    job = config.jobs[0]
    assert job.id == "sample"
    assert job.enabled is False
    assert job.retry.max_attempts == 5
    assert job.retry.delay_for(1) == 2.0
    assert job.retry.delay_for(2) == 6.0
    assert job.retry.delay_for(4) == 30.0
    assert job.retry.jitter_seconds == 1.5


def test_missing_schedule_file_is_reported(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_job_definitions(tmp_path / "absent.toml")


def test_shipped_schedule_runs_the_points_sweep_weekly() -> None:
    config = load_job_definitions(SCHEDULES_PATH)

    assert [job.id for job in config.jobs] == ["points_sweep"]
    job = config.jobs[0]
    assert job.cron == "0 0 * * 0"
    assert job.retry.max_attempts == 3
    assert resolve_task(job.task).__name__ == "run_points_sweep"


def test_resolve_task_rejects_bad_paths() -> None:
    with pytest.raises(ValueError):
        resolve_task("no_module_path")
    with pytest.raises(AttributeError):
        resolve_task("loyalty_api.jobs.points_sweep.missing")
    with pytest.raises(TypeError):
        resolve_task("loyalty_api.jobs.points_sweep.sweep_description")


@pytest.mark.asyncio
async def test_sweep_job_runs_through_scheduler(session_factory) -> None:
    config = load_job_definitions(SCHEDULES_PATH)
    scheduler = LedgerJobScheduler(session_factory=session_factory, config_path=SCHEDULES_PATH)

    summary = await scheduler.build_runner(config.jobs[0])()

    assert summary["expired_batch_count"] == 0
    assert summary["customers_failed"] == 0
    job_snapshot = get_scheduler_store().snapshot().jobs["points_sweep"]
    assert job_snapshot.counters["success"] == 1
    assert job_snapshot.last_summary["notifications_sent"] == 0
