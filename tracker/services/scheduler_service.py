"""
Activity Tracker
Scheduler Service.

Lightweight background job scheduler built on a single daemon thread.
Each registered job carries a wall-clock schedule (hour, minute and an
optional day_of_week); the loop wakes every ``TICK_SECONDS`` and fires
jobs whose slot has arrived and which have not yet run in that slot.

Architecture:
    - SchedulerService: manages job registration and execution
    - Jobs are stored in ScheduledJob model for persistence
    - Manual trigger API for development and testing
    - Pluggable job functions registered via decorator
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Callable

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db
from tracker.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)

TICK_SECONDS = 30


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("daily_reminders")
        def send_daily_reminders(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


def is_due(schedule: dict, now: datetime, last_run: datetime | None) -> bool:
    """True when ``now`` is at or past today's slot and the slot has not run yet."""
    dow = schedule.get("day_of_week")
    if dow is not None and now.weekday() != int(dow):
        return False
    slot = now.replace(hour=int(schedule.get("hour", 0)), minute=int(schedule.get("minute", 0)),
                       second=0, microsecond=0)
    if now < slot:
        return False
    if last_run is None:
        return True
    return last_run.replace(tzinfo=None) < slot


class SchedulerService:
    """
    Lightweight scheduler service.

    Manages job registration, persistence, and execution.
    Jobs are executed within Flask app context.
    """

    _app: Flask | None = None
    _running: bool = False
    _thread: threading.Thread | None = None
    _last_runs: dict[str, datetime] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app context."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """
        Ensure all registered jobs have a corresponding DB record.
        Creates missing records with default config.
        """
        created = []
        for name, fn in _job_registry.items():
            if ScheduledJob.query.filter_by(job_name=name).first():
                continue
            job = ScheduledJob(
                job_name=name,
                description=(fn.__doc__ or f"Scheduled job: {name}").strip().splitlines()[0],
                schedule_config=_get_default_schedule(name),
                is_enabled=True,
            )
            db.session.add(job)
            created.append(job)
        if created:
            db.session.commit()
            logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name inside an app context and record the run.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._app.app_context():
            try:
                result = fn(cls._app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed", job_name)

            duration_ms = int((time.monotonic() - start) * 1000)

            try:
                cls.ensure_jobs_registered()
                job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
                job_record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their DB status."""
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "schedule": _get_default_schedule(name),
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs

    # ── Background loop ──────────────────────────────────────────────────

    @classmethod
    def start(cls) -> None:
        """Start the daemon thread. No-op if already running."""
        if cls._running or not cls._app:
            return
        with cls._app.app_context():
            cls.ensure_jobs_registered()
        cls._running = True
        cls._thread = threading.Thread(target=cls._loop, name="tracker-scheduler", daemon=True)
        cls._thread.start()
        logger.info("Scheduler started (%d jobs)", len(_job_registry))

    @classmethod
    def stop(cls) -> None:
        cls._running = False

    @classmethod
    def tick(cls, now: datetime | None = None) -> list[str]:
        """Run every enabled job that is due at ``now``. Returns the names that ran."""
        now = now or datetime.now()
        with cls._app.app_context():
            records = {j.job_name: j for j in ScheduledJob.query.all()}
        fired = []
        for name in _job_registry:
            record = records.get(name)
            if record is not None and not record.is_enabled:
                continue
            schedule = (record.schedule_config if record else None) or _get_default_schedule(name)
            if is_due(schedule, now, cls._last_runs.get(name)):
                cls._last_runs[name] = now
                cls.run_job(name)
                fired.append(name)
        return fired

    @classmethod
    def _loop(cls) -> None:
        # First pass only marks today's past slots so a restart does not re-send
        now = datetime.now()
        for name in _job_registry:
            cls._last_runs.setdefault(name, now)
        while cls._running:
            try:
                cls.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            time.sleep(TICK_SECONDS)


def _get_default_schedule(job_name: str) -> dict:
    """Return default schedule config for known job types."""
    defaults = {
        "daily_reminders": {"hour": 9, "minute": 0, "description": "Daily at 09:00"},
        "weekly_reminders": {"day_of_week": 0, "hour": 9, "minute": 0,
                             "description": "Mondays at 09:00"},
    }
    return defaults.get(job_name, {"hour": 0, "minute": 0,
                                   "description": "Daily at midnight"})
