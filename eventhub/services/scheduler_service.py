"""
EventHub Planning Service
Job registry and runner.

The app never schedules anything itself. A platform cron calls
``/api/cron/<slug>`` (or an operator runs ``flask run-job``) and the job is
executed synchronously through ``SchedulerService.run_job``, which records the
outcome on the job's ``ScheduledJob`` row.

A job is a function ``fn(app) -> dict`` registered with ``@register_job``.
The returned summary is stored as ``last_run_result``; ``"ok": False`` in it
marks the run failed even though nothing was raised.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from flask import Flask

from eventhub.models import db
from eventhub.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RegisteredJob:
    name: str
    fn: Callable
    cron: str
    cadence: str

    @property
    def summary(self) -> str:
        doc = (self.fn.__doc__ or "").strip()
        return doc.splitlines()[0] if doc else self.name.replace("_", " ").capitalize()


_REGISTRY: dict[str, RegisteredJob] = {}


def register_job(name: str, *, cron: str = "0 0 * * *", cadence: str = "Daily at midnight"):
    """Add a job function to the registry under ``name``.

    ``cron`` and ``cadence`` only describe how the external trigger is
    expected to be configured; they are copied to ``schedule_config``.
    """
    def decorator(fn: Callable) -> Callable:
        _REGISTRY[name] = RegisteredJob(name=name, fn=fn, cron=cron, cadence=cadence)
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return {name: job.fn for name, job in _REGISTRY.items()}


# ═══════════════════════════════════════════════════════════════════════════
#  Runner
# ═══════════════════════════════════════════════════════════════════════════

def _outcome(job_name, status, *, duration_ms=0, result=None, error=None) -> dict:
    return {
        "job_name": job_name,
        "status": status,
        "duration_ms": duration_ms,
        "result": result,
        "error": error,
    }


class SchedulerService:
    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler ready: %s", ", ".join(sorted(_REGISTRY)) or "no jobs")

    @staticmethod
    def _record(job_name: str) -> ScheduledJob | None:
        return ScheduledJob.query.filter_by(job_name=job_name).first()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Insert the missing ``ScheduledJob`` rows; existing rows are left alone."""
        known = {name for (name,) in db.session.query(ScheduledJob.job_name)}
        created = [
            ScheduledJob(
                job_name=job.name,
                description=job.summary,
                schedule_config={"cron": job.cron, "description": job.cadence},
                status="active",
                is_enabled=True,
            )
            for job in _REGISTRY.values()
            if job.name not in known
        ]
        if created:
            db.session.add_all(created)
            db.session.commit()
            logger.info("Registered %d new scheduled job rows", len(created))
        return created

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Run ``job_name`` once in the current app context.

        Returns a dict with ``job_name``, ``status``, ``duration_ms``,
        ``result`` and ``error``. ``status`` is ``success`` or ``failed`` for
        a run, ``skipped`` for a paused job, ``error`` when the job is unknown
        or the scheduler was never initialised.
        """
        job = _REGISTRY.get(job_name)
        if job is None:
            return _outcome(job_name, "error", error=f"Unknown job: {job_name}")
        if cls._app is None:
            return _outcome(job_name, "error", error="Scheduler not initialized")

        record = cls._record(job_name)
        if record is not None and record.is_paused:
            logger.info("Skipping paused job", extra={"job": job_name})
            return _outcome(job_name, "skipped")

        started = time.monotonic()
        try:
            result, error = job.fn(cls._app), None
        except Exception as exc:
            db.session.rollback()
            logger.exception("Job crashed", extra={"job": job_name})
            result, error = None, str(exc)
        duration_ms = int((time.monotonic() - started) * 1000)

        failed = error is not None or (isinstance(result, dict) and result.get("ok") is False)
        if failed and error is None:
            error = result.get("error")
        status = "failed" if failed else "success"

        cls._store_run(job_name, status=status, duration_ms=duration_ms,
                       result=result, error=error)
        return _outcome(job_name, status, duration_ms=duration_ms, result=result, error=error)

    @classmethod
    def _store_run(cls, job_name, *, status, duration_ms, result, error) -> None:
        # a bookkeeping failure must not turn a successful run into a 500
        try:
            record = cls._record(job_name)
            if record is None:
                return
            record.record_run(
                status=status,
                duration_ms=duration_ms,
                result=result if isinstance(result, dict) else {"output": repr(result)},
                error=error,
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Could not store run outcome", extra={"job": job_name})

    @classmethod
    def list_jobs(cls) -> list[dict]:
        rows = {row.job_name: row for row in ScheduledJob.query.all()}
        items = []
        for name, job in _REGISTRY.items():
            row = rows.get(name)
            item = row.to_dict() if row else {"job_name": name, "description": job.summary}
            item["registered"] = True
            items.append(item)
        return items

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        record = cls._record(job_name)
        if record is None:
            return None
        record.is_enabled = enabled
        record.status = "active" if enabled else "paused"
        db.session.commit()
        logger.info("Job %s", record.status, extra={"job": job_name})
        return record.to_dict()
