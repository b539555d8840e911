from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from yellowjersey.extensions import db
from yellowjersey.models import JobRun


def record_job_run(
    *,
    job_name: str,
    ok: bool,
    started_at: datetime,
    processed: int = 0,
    failed: int = 0,
    error: str | None = None,
) -> JobRun | None:
    """Persist a run summary. A bookkeeping failure is logged and never fails the job itself."""
    now = datetime.utcnow()
    row = JobRun(
        job_name=(job_name or "unknown").strip()[:64],
        ran_at=now,
        ok=bool(ok),
        duration_ms=max(0, int((now - started_at).total_seconds() * 1000)),
        processed=int(processed or 0),
        failed=int(failed or 0),
        error=(error or "")[:1000] or None,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("job_run_record_failed job_name=%s", job_name)
        return None
    return row
