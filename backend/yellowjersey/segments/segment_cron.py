from __future__ import annotations

import hmac
import os
from datetime import datetime

from flask import Blueprint, jsonify, request, current_app

from yellowjersey.services.escrow_service import release_due_funds
from yellowjersey.utils.job_runs import record_job_run

cron_bp = Blueprint("cron_bp", __name__, url_prefix="/api/cron")


def _authorized() -> bool:
    secret = (os.getenv("CRON_SECRET") or "").strip()
    if not secret:
        return True
    supplied = (request.headers.get("X-Cron-Secret") or "").strip()
    if not supplied:
        auth = (request.headers.get("Authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            supplied = auth[7:].strip()
    return hmac.compare_digest(supplied, secret)


@cron_bp.route("/release-funds", methods=["GET", "POST"])
def release_funds():
    if not _authorized():
        return jsonify({"error": "Unauthorised"}), 401

    started_at = datetime.utcnow()
    results = release_due_funds()
    record_job_run(
        job_name="funds_release",
        ok=results["failed"] == 0,
        started_at=started_at,
        processed=results["released"],
        failed=results["failed"],
        error="; ".join(results["errors"]) or None,
    )
    current_app.logger.info("cron_release_funds released=%s failed=%s", results["released"], results["failed"])
    return jsonify(
        {
            "success": True,
            "released": results["released"],
            "failed": results["failed"],
            "errors": results["errors"],
        }
    ), 200
