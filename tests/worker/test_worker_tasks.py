from __future__ import annotations

from fleetmon.services.rollover_service import RolloverOutcome
from fleetmon.worker import tasks as worker_tasks


def test_check_day_rollover_runs_monitor(monkeypatch):
    class _Monitor:
        async def check(self):
            return RolloverOutcome.UNCHANGED

    monkeypatch.setattr(worker_tasks, "_monitor", _Monitor())

    assert worker_tasks.check_day_rollover() == "unchanged"


def test_probe_agent_reports_app_errors(monkeypatch, agents_repo, ingestion, publisher):
    from fleetmon.services.health_prober import HealthProber

    monkeypatch.setattr(
        worker_tasks,
        "HealthProber",
        lambda: HealthProber(agents_repo=agents_repo, ingestion=ingestion, publisher=publisher),
    )

    assert worker_tasks.probe_agent("ghost") == {
        "success": False,
        "error": "Agent not found",
        "code": "AGENT_NOT_FOUND",
    }


def test_beat_schedules_rollover_check():
    from fleetmon.worker.celery_app import celery_app

    entry = celery_app.conf.beat_schedule["check-day-rollover"]
    assert entry["task"] == "check_day_rollover"
    assert entry["schedule"] == 60.0
