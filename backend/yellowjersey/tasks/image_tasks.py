from __future__ import annotations

import json
import time
from datetime import datetime

import requests
from celery import shared_task
from flask import current_app
from PIL import UnidentifiedImageError
from sqlalchemy import or_

from yellowjersey.extensions import db
from yellowjersey.integrations.image_search.factory import build_image_search_provider
from yellowjersey.models import CanonicalProduct, ImageDiscoveryJob, ProductImage
from yellowjersey.services.image_review_service import stale_processing_filter, sync_for_image
from yellowjersey.utils import storage
from yellowjersey.utils.image_fingerprint import probe_image
from yellowjersey.utils.job_runs import record_job_run

MAX_DISCOVERED_IMAGES = 10
MAX_DOWNLOAD_BYTES = 10 * 1024 * 1024
DOWNLOAD_TIMEOUT_SECONDS = 20
DOWNLOAD_CHUNK_BYTES = 64 * 1024
DISCOVERY_DRAIN_BATCH = 5

_EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


def _retry_countdown(retries: int) -> int:
    return int(min(900, max(5, 5 * (2 ** int(max(0, retries))))))


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


class ImageDownloadError(RuntimeError):
    pass


def _fetch(url: str) -> bytes:
    resp = requests.get(url, timeout=DOWNLOAD_TIMEOUT_SECONDS, stream=True)
    try:
        if resp.status_code != 200:
            raise ImageDownloadError(f"IMAGE_DOWNLOAD_FAILED:http_{resp.status_code}")
        declared = str(resp.headers.get("Content-Length") or "").strip()
        if declared.isdigit() and int(declared) > MAX_DOWNLOAD_BYTES:
            raise ImageDownloadError("IMAGE_DOWNLOAD_FAILED:too_large")
        chunks = []
        total = 0
        for chunk in resp.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
            if not chunk:
                continue
            total += len(chunk)
            if total > MAX_DOWNLOAD_BYTES:
                raise ImageDownloadError("IMAGE_DOWNLOAD_FAILED:too_large")
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        resp.close()


def download_product_image_now(image_id: int) -> dict:
    """Copy an external image into storage and fill its size, mime type and perceptual hash."""
    image = db.session.get(ProductImage, int(image_id))
    if image is None:
        return {"ok": False, "skipped": "missing"}
    if image.is_downloaded and image.storage_path:
        return {"ok": True, "skipped": "already_downloaded"}
    if not image.external_url:
        return {"ok": False, "skipped": "no_external_url"}

    data = _fetch(image.external_url)
    try:
        meta = probe_image(data)
    except UnidentifiedImageError:
        raise ImageDownloadError("IMAGE_DOWNLOAD_FAILED:not_an_image")

    owner_key = f"products/{image.product_id}" if image.product_id else f"canonical/{image.canonical_product_id}"
    path = storage.build_storage_path(owner_key, _EXTENSIONS.get(meta["mime_type"], "jpg"))
    size = storage.save_bytes(path, data)

    url = storage.public_url(path)
    image.storage_path = path
    image.is_downloaded = True
    image.width = meta["width"]
    image.height = meta["height"]
    image.mime_type = meta["mime_type"]
    image.file_size = size
    image.phash = meta["phash"]
    image.card_url = image.card_url or url
    image.detail_url = image.detail_url or url
    image.thumbnail_url = image.thumbnail_url or url
    sync_for_image(image)
    db.session.commit()
    return {"ok": True, "image_id": int(image.id), "storage_path": path}


@shared_task(bind=True, name="yellowjersey.tasks.image_tasks.download_product_image", max_retries=4)
def download_product_image(self, image_id: int):
    started = time.perf_counter()
    try:
        result = download_product_image_now(int(image_id))
        _task_log("download_product_image", status="ok", started_at=started, image_id=int(image_id), **result)
        return result
    except (requests.RequestException, ImageDownloadError) as exc:
        db.session.rollback()
        if int(self.request.retries or 0) < int(self.max_retries or 0):
            countdown = _retry_countdown(int(self.request.retries or 0))
            _task_log(
                "download_product_image",
                status="retrying",
                started_at=started,
                image_id=int(image_id),
                countdown=countdown,
                detail=str(exc),
            )
            raise self.retry(exc=exc, countdown=countdown)
        _task_log("download_product_image", status="failed", started_at=started, image_id=int(image_id), detail=str(exc))
        raise


def _search_query(canonical: CanonicalProduct) -> str:
    parts = [canonical.manufacturer or "", canonical.normalized_name or ""]
    query = " ".join(p.strip() for p in parts if p and p.strip())
    if canonical.manufacturer and (canonical.normalized_name or "").lower().startswith(canonical.manufacturer.lower()):
        query = canonical.normalized_name.strip()
    return query


def run_image_discovery(job_id: int) -> dict:
    job = db.session.get(ImageDiscoveryJob, int(job_id))
    if job is None:
        return {"ok": False, "skipped": "missing"}
    if job.status in ("completed", "failed"):
        return {"ok": True, "skipped": job.status}

    job.status = "processing"
    job.attempts = int(job.attempts or 0) + 1
    job.started_at = datetime.utcnow()
    db.session.commit()

    try:
        canonical = db.session.get(CanonicalProduct, int(job.canonical_product_id))
        if canonical is None:
            raise RuntimeError("canonical product not found")
        query = _search_query(canonical)
        if not query:
            raise RuntimeError("canonical product has no name to search for")

        candidates = build_image_search_provider().search(query, limit=MAX_DISCOVERED_IMAGES)
        existing = {
            r[0]
            for r in ProductImage.query.with_entities(ProductImage.external_url)
            .filter(ProductImage.canonical_product_id == int(canonical.id))
            .all()
            if r[0]
        }
        next_order = len(existing)
        added = 0
        for cand in candidates:
            if added >= MAX_DISCOVERED_IMAGES:
                break
            if not cand.url or cand.url in existing:
                continue
            existing.add(cand.url)
            db.session.add(
                ProductImage(
                    canonical_product_id=int(canonical.id),
                    external_url=cand.url[:1024],
                    width=cand.width,
                    height=cand.height,
                    approval_status="pending",
                    source=cand.source or "discovery",
                    sort_order=next_order + added,
                )
            )
            added += 1

        job.images_found = added
        job.status = "completed"
        job.error = None
        job.finished_at = datetime.utcnow()
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        job = db.session.get(ImageDiscoveryJob, int(job_id))
        job.status = "failed"
        job.error = str(exc)[:1000]
        job.finished_at = datetime.utcnow()
        db.session.commit()
        current_app.logger.warning("image_discovery_failed job_id=%s err=%s", job_id, exc)
        return {"ok": False, "job_id": int(job_id), "error": job.error}

    current_app.logger.info("image_discovery_completed job_id=%s images_found=%s", job_id, added)
    return {"ok": True, "job_id": int(job_id), "images_found": added}


@shared_task(bind=True, name="yellowjersey.tasks.image_tasks.discover_product_images", max_retries=0)
def discover_product_images(self, job_id: int):
    started = time.perf_counter()
    result = run_image_discovery(int(job_id))
    _task_log("discover_product_images", status="ok" if result.get("ok") else "failed", started_at=started, **result)
    return result


@shared_task(bind=True, name="yellowjersey.tasks.image_tasks.drain_discovery_queue", max_retries=0)
def drain_discovery_queue(self):
    """Pick up queued discovery jobs whose enqueue was skipped or lost, and jobs stuck in processing."""
    started_at = datetime.utcnow()
    started = time.perf_counter()
    jobs = (
        ImageDiscoveryJob.query.filter(or_(ImageDiscoveryJob.status == "queued", stale_processing_filter()))
        .order_by(ImageDiscoveryJob.created_at.asc())
        .limit(DISCOVERY_DRAIN_BATCH)
        .all()
    )
    job_ids = [int(j.id) for j in jobs]
    failed = 0
    for job_id in job_ids:
        if not run_image_discovery(job_id).get("ok"):
            failed += 1
    record_job_run(
        job_name="image_discovery_drain",
        ok=failed == 0,
        started_at=started_at,
        processed=len(job_ids),
        failed=failed,
    )
    _task_log("drain_discovery_queue", status="ok", started_at=started, processed=len(job_ids), failed=failed)
    return {"ok": True, "processed": len(job_ids), "failed": failed}
