"""
Team Resource Planner
Scheduler Service.

Background jobs run by an APScheduler BackgroundScheduler, one CronTrigger
per registered job. Jobs can also be triggered manually (CLI, tests).

Architecture:
    - Job functions are registered with @register_job(name, cron_config_key)
    - SchedulerService.init_app() stores the app and, when SCHEDULER_ENABLED
      and not testing, starts the BackgroundScheduler
    - Every job runs inside an app context and receives the app
"""

from __future__ import annotations

import atexit
import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from flask import Flask

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, dict] = {}


def register_job(name: str, cron_config_key: str):
    """Decorator to register a job function.

    ``cron_config_key`` names an app.config entry holding CronTrigger fields,
    e.g. ``{"day_of_week": "fri", "hour": 23, "minute": 0}``.

    Usage:
        @register_job("weekly_backup", "BACKUP_CRON")
        def weekly_backup(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = {"fn": fn, "cron_config_key": cron_config_key}
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return {name: entry["fn"] for name, entry in _job_registry.items()}


class SchedulerService:
    """Owns the BackgroundScheduler and executes jobs within the app context."""

    _app: Flask | None = None
    _scheduler: BackgroundScheduler | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Initialize scheduler with Flask app; start it when enabled."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs", len(_job_registry))

        if app.config.get("TESTING") or not app.config.get("SCHEDULER_ENABLED"):
            return
        cls.start()

    @classmethod
    def start(cls) -> BackgroundScheduler:
        if cls._scheduler is not None and cls._scheduler.running:
            return cls._scheduler

        timezone = cls._app.config.get("BACKUP_TIMEZONE", "UTC")
        scheduler = BackgroundScheduler(daemon=True, timezone=timezone)
        for name, entry in _job_registry.items():
            cron = cls._app.config.get(entry["cron_config_key"]) or {}
            scheduler.add_job(
                func=cls.run_job,
                args=[name],
                trigger=CronTrigger(timezone=timezone, **cron),
                id=name,
                name=entry["fn"].__doc__ or name,
                replace_existing=True,
            )
            logger.info("Scheduled job %s: %s (%s)", name, cron, timezone)
        scheduler.start()
        atexit.register(cls.shutdown)
        cls._scheduler = scheduler
        return scheduler

    @classmethod
    def shutdown(cls) -> None:
        if cls._scheduler is not None and cls._scheduler.running:
            cls._scheduler.shutdown(wait=False)
        cls._scheduler = None

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with status, duration_ms, result or error.
        """
        entry = _job_registry.get(job_name)
        if not entry:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        logger.info("Running job %s", job_name, extra={"job_name": job_name})
        start = time.monotonic()
        result = None
        error = None
        status = "success"

        try:
            with cls._app.app_context():
                result = entry["fn"](cls._app)
        except Exception as exc:
            status = "failed"
            error = str(exc)
            logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})

        duration_ms = int((time.monotonic() - start) * 1000)
        if status == "success":
            logger.info("Job %s finished in %d ms", job_name, duration_ms, extra={"job_name": job_name})
        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        """List all registered jobs with their schedule and next run time."""
        jobs = []
        for name, entry in _job_registry.items():
            scheduled = cls._scheduler.get_job(name) if cls._scheduler else None
            next_run = getattr(scheduled, "next_run_time", None) if scheduled else None
            jobs.append({
                "job_name": name,
                "schedule": cls._app.config.get(entry["cron_config_key"]) if cls._app else None,
                "next_run": next_run.isoformat() if next_run else None,
                "running": scheduled is not None,
            })
        return jobs
