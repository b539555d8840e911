from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from yellowjersey.services.escrow_service import release_due_funds
from yellowjersey.services.offer_service import expire_overdue_offers
from yellowjersey.utils.job_runs import record_job_run


def _task_log(task_name: str, *, status: str, started_at: float, **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    current_app.logger.info(json.dumps(payload))


@shared_task(bind=True, name="yellowjersey.tasks.escrow_tasks.release_held_funds", max_retries=0)
def release_held_funds(self):
    started_at = datetime.utcnow()
    started = time.perf_counter()
    results = release_due_funds()
    record_job_run(
        job_name="funds_release",
        ok=results["failed"] == 0,
        started_at=started_at,
        processed=results["released"],
        failed=results["failed"],
        error="; ".join(results["errors"]) or None,
    )
    _task_log(
        "release_held_funds",
        status="ok" if results["failed"] == 0 else "partial",
        started_at=started,
        released=results["released"],
        failed=results["failed"],
    )
    return results


@shared_task(bind=True, name="yellowjersey.tasks.escrow_tasks.expire_offers", max_retries=0)
def expire_offers(self):
    started_at = datetime.utcnow()
    started = time.perf_counter()
    expired = expire_overdue_offers()
    record_job_run(job_name="offer_expiry", ok=True, started_at=started_at, processed=expired)
    _task_log("expire_offers", status="ok", started_at=started, expired=expired)
    return {"ok": True, "expired": expired}
