from __future__ import annotations

import os
from datetime import datetime, timedelta

import requests
from flask import current_app
from sqlalchemy import and_, func, or_

from yellowjersey.extensions import db
from yellowjersey.models import CanonicalProduct, ImageDiscoveryJob, Product, ProductImage
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils import storage
from yellowjersey.utils.image_fingerprint import find_near_duplicates


MAX_APPROVED_IMAGES = 5
# A job still processing after this long is treated as abandoned by its worker.
DISCOVERY_STALE_SECONDS = 15 * 60

_NEXT_STATUS = {
    "pending": "approved",
    "approved": "rejected",
    "rejected": "pending",
}


def next_status(current: str | None) -> str:
    return _NEXT_STATUS.get((current or "pending").strip().lower(), "pending")


def display_url(image: ProductImage) -> str:
    if not image.is_downloaded and image.external_url:
        return image.external_url
    return (
        image.cloudinary_url
        or image.card_url
        or storage.public_url(image.storage_path)
        or image.external_url
        or storage.PLACEHOLDER_IMAGE_URL
    )


def _owner_filter(image: ProductImage):
    if image.product_id is not None:
        return ProductImage.product_id == image.product_id
    return ProductImage.canonical_product_id == image.canonical_product_id


def _jobs_mode() -> str:
    raw = (os.getenv("BACKGROUND_JOBS") or "").strip().lower()
    if raw in ("celery", "inline", "off"):
        return raw
    return "off" if current_app.config.get("TESTING") else "celery"


def schedule_image_download(image_id: int) -> bool:
    mode = _jobs_mode()
    if mode == "off":
        return False
    from yellowjersey.tasks.image_tasks import download_product_image, download_product_image_now

    if mode == "inline":
        try:
            download_product_image_now(int(image_id))
        except (requests.RequestException, RuntimeError, ValueError):
            db.session.rollback()
            current_app.logger.exception("image_download_inline_failed image_id=%s", image_id)
            return False
        return True
    try:
        download_product_image.delay(int(image_id))
        return True
    except Exception:
        current_app.logger.exception("image_download_enqueue_failed image_id=%s", image_id)
        return False


def schedule_discovery(job_id: int) -> str:
    """Hand a discovery job to the worker. Jobs left queued are picked up by the drain task."""
    mode = _jobs_mode()
    if mode == "off":
        return "queued"
    from yellowjersey.tasks.image_tasks import discover_product_images, run_image_discovery

    if mode == "inline":
        result = run_image_discovery(int(job_id))
        return "completed" if result.get("ok") else "failed"
    try:
        discover_product_images.delay(int(job_id))
    except Exception:
        current_app.logger.exception("image_discovery_enqueue_failed job_id=%s", job_id)
    return "queued"


def discovery_stale_cutoff() -> datetime:
    return datetime.utcnow() - timedelta(seconds=DISCOVERY_STALE_SECONDS)


def stale_processing_filter():
    return and_(
        ImageDiscoveryJob.status == "processing",
        or_(ImageDiscoveryJob.started_at.is_(None), ImageDiscoveryJob.started_at < discovery_stale_cutoff()),
    )


def active_discovery_job(canonical_product_id: int) -> ImageDiscoveryJob | None:
    """Return the live job for a product, failing any processing job that has gone stale."""
    stale = ImageDiscoveryJob.query.filter(
        ImageDiscoveryJob.canonical_product_id == int(canonical_product_id),
        stale_processing_filter(),
    ).all()
    for job in stale:
        job.status = "failed"
        job.error = "timed out while processing"
        job.finished_at = datetime.utcnow()
        current_app.logger.warning("image_discovery_stale job_id=%s", job.id)
    if stale:
        db.session.commit()
    return ImageDiscoveryJob.query.filter(
        ImageDiscoveryJob.canonical_product_id == int(canonical_product_id),
        ImageDiscoveryJob.status.in_(("queued", "processing")),
    ).first()


def discovery_queue(limit: int = 50) -> list[dict]:
    """Canonical products that still have images waiting for review, oldest first."""
    rows = (
        db.session.query(ProductImage.canonical_product_id, func.count(ProductImage.id))
        .filter(ProductImage.canonical_product_id.isnot(None), ProductImage.approval_status == "pending")
        .group_by(ProductImage.canonical_product_id)
        .all()
    )
    pending = {int(cid): int(n) for cid, n in rows}
    if not pending:
        return []
    products = (
        CanonicalProduct.query.filter(
            CanonicalProduct.id.in_(list(pending.keys())),
            CanonicalProduct.image_qa_completed_at.is_(None),
        )
        .order_by(CanonicalProduct.created_at.asc(), CanonicalProduct.id.asc())
        .limit(max(1, min(int(limit or 50), 200)))
        .all()
    )
    out = []
    for p in products:
        payload = p.to_dict()
        payload["pending_images"] = pending.get(int(p.id), 0)
        out.append(payload)
    return out


def _image_payload(image: ProductImage) -> dict:
    return {
        "id": image.id,
        "url": image.cloudinary_url or image.card_url,
        "cloudinaryUrl": image.cloudinary_url,
        "thumbnailUrl": image.thumbnail_url,
        "cardUrl": image.card_url,
        "mobileCardUrl": image.mobile_card_url,
        "galleryUrl": image.gallery_url,
        "detailUrl": image.detail_url,
        "isPrimary": bool(image.is_primary),
        "order": int(image.sort_order or 0),
        "source": image.source or "upload",
    }


def _syncable_images(owner_column, owner_id: int) -> list[ProductImage]:
    return (
        ProductImage.query.filter(
            owner_column == int(owner_id),
            ProductImage.approval_status == "approved",
            or_(ProductImage.cloudinary_url.isnot(None), ProductImage.card_url.isnot(None)),
        )
        .order_by(ProductImage.is_primary.desc(), ProductImage.sort_order.asc(), ProductImage.id.asc())
        .all()
    )


def _apply_document(product: Product, items: list[dict]) -> None:
    product.set_images(items)
    first = items[0] if items else None
    product.primary_image_url = (first.get("cardUrl") or first.get("url")) if first else None


def sync_product_images(product_id: int) -> list[dict]:
    """Rebuild products.images_json from the approved rows owned by the listing."""
    product = db.session.get(Product, int(product_id))
    if product is None:
        return []
    items = [_image_payload(img) for img in _syncable_images(ProductImage.product_id, product_id)]
    _apply_document(product, items)
    return items


def sync_canonical_images(canonical_product_id: int) -> int:
    """Copy canonical images into linked listings that have no images of their own."""
    items = [_image_payload(img) for img in _syncable_images(ProductImage.canonical_product_id, canonical_product_id)]
    if not items:
        return 0
    updated = 0
    linked = Product.query.filter(Product.canonical_product_id == int(canonical_product_id)).all()
    for product in linked:
        if product.get_images():
            continue
        _apply_document(product, items)
        updated += 1
    return updated


def sync_for_image(image: ProductImage) -> None:
    if image.product_id is not None:
        sync_product_images(int(image.product_id))
    elif image.canonical_product_id is not None:
        sync_canonical_images(int(image.canonical_product_id))


def listing_image_owner(product: Product):
    """
    Rows that back a listing's images: its own uploads when it has any,
    otherwise the images of its canonical product. Returns (column, owner_id).
    """
    own = ProductImage.query.filter(ProductImage.product_id == int(product.id)).first()
    if own is not None:
        return ProductImage.product_id, int(product.id)
    if product.canonical_product_id is not None:
        return ProductImage.canonical_product_id, int(product.canonical_product_id)
    return None, None


def listing_images(product: Product) -> list[ProductImage]:
    column, owner_id = listing_image_owner(product)
    if column is None:
        return []
    return (
        ProductImage.query.filter(column == owner_id)
        .order_by(ProductImage.sort_order.asc(), ProductImage.id.asc())
        .all()
    )


def sync_listing_document(product: Product) -> list[dict]:
    column, owner_id = listing_image_owner(product)
    items = [_image_payload(img) for img in _syncable_images(column, owner_id)] if column is not None else []
    _apply_document(product, items)
    return items


def set_image_status(image: ProductImage, status: str | None = None) -> ProductImage:
    target = (status or next_status(image.approval_status)).strip().lower()
    if target not in _NEXT_STATUS:
        raise ServiceError(400, "Invalid status")
    image.approval_status = target
    image.approved_at = datetime.utcnow() if target == "approved" else None
    sync_for_image(image)
    db.session.commit()
    if target == "approved" and not image.is_downloaded and image.external_url:
        schedule_image_download(int(image.id))
    return image


def set_primary(image: ProductImage) -> ProductImage:
    ProductImage.query.filter(_owner_filter(image), ProductImage.id != image.id).update(
        {ProductImage.is_primary: False}, synchronize_session="fetch"
    )
    image.is_primary = True
    sync_for_image(image)
    db.session.commit()
    return image


def approve_batch(
    canonical_product_id: int,
    image_ids: list[int],
    *,
    primary_image_id: int | None = None,
    reject_others: bool = True,
) -> dict:
    ids = sorted({int(i) for i in image_ids or []})
    if not ids:
        raise ServiceError(400, "imageIds is required")
    rows = ProductImage.query.filter(ProductImage.canonical_product_id == int(canonical_product_id)).all()
    by_id = {int(r.id): r for r in rows}
    unknown = [i for i in ids if i not in by_id]
    if unknown:
        raise ServiceError(404, "Images not found for this product", {"missingIds": unknown})

    already_approved = sum(1 for r in rows if r.approval_status == "approved" and int(r.id) not in ids)
    if already_approved + len(ids) > MAX_APPROVED_IMAGES:
        raise ServiceError(
            400,
            f"A product can have at most {MAX_APPROVED_IMAGES} approved images",
            {"alreadyApproved": already_approved, "requested": len(ids), "max": MAX_APPROVED_IMAGES},
        )
    if primary_image_id is not None and int(primary_image_id) not in ids:
        raise ServiceError(400, "primaryImageId must be one of the approved images")

    now = datetime.utcnow()
    to_download = []
    for image_id in ids:
        row = by_id[image_id]
        row.approval_status = "approved"
        row.approved_at = now
        if not row.is_downloaded and row.external_url:
            to_download.append(image_id)
    rejected = 0
    if reject_others:
        for row in rows:
            if int(row.id) not in ids and row.approval_status == "pending":
                row.approval_status = "rejected"
                rejected += 1
    if primary_image_id is not None:
        for row in rows:
            row.is_primary = int(row.id) == int(primary_image_id)

    sync_canonical_images(int(canonical_product_id))
    db.session.commit()
    for image_id in to_download:
        schedule_image_download(image_id)
    current_app.logger.info(
        "image_batch_approved canonical_product_id=%s approved=%s rejected=%s",
        canonical_product_id,
        len(ids),
        rejected,
    )
    return {"approved": len(ids), "rejected": rejected, "queuedDownloads": len(to_download)}


def mark_complete(canonical_product_id: int, *, admin_id: int | None = None) -> dict:
    """
    Finish QA for a canonical product: keep approved images, delete the rest.
    Deletion is irreversible; validation happens before anything is removed.
    """
    canonical = db.session.get(CanonicalProduct, int(canonical_product_id))
    if canonical is None:
        raise ServiceError(404, "Product not found")
    rows = ProductImage.query.filter(ProductImage.canonical_product_id == int(canonical_product_id)).all()
    approved = [r for r in rows if r.approval_status == "approved"]
    if not approved:
        raise ServiceError(400, "At least one image must be approved before completing")
    primaries = [r for r in approved if r.is_primary]
    if len(primaries) != 1:
        raise ServiceError(400, "Exactly one approved image must be set as primary", {"primaryCount": len(primaries)})

    doomed = [r for r in rows if r.approval_status != "approved"]
    storage_paths = [r.storage_path for r in doomed if r.is_downloaded and r.storage_path]
    try:
        removed_files = storage.delete_objects(storage_paths) if storage_paths else 0
        for row in doomed:
            db.session.delete(row)
        canonical.image_qa_completed_at = datetime.utcnow()
        canonical.image_qa_completed_by = admin_id
        sync_canonical_images(int(canonical_product_id))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("image_qa_complete_failed canonical_product_id=%s", canonical_product_id)
        raise
    current_app.logger.info(
        "image_qa_completed canonical_product_id=%s kept=%s deleted=%s files_removed=%s",
        canonical_product_id,
        len(approved),
        len(doomed),
        removed_files,
    )
    return {"kept": len(approved), "deleted": len(doomed), "filesRemoved": removed_files}


def grouped_images(canonical_product_id: int) -> dict:
    rows = (
        ProductImage.query.filter(ProductImage.canonical_product_id == int(canonical_product_id))
        .order_by(ProductImage.sort_order.asc(), ProductImage.id.asc())
        .all()
    )
    duplicates = find_near_duplicates([(int(r.id), r.phash) for r in rows])
    groups: dict[str, list[dict]] = {"pending": [], "approved": [], "rejected": []}
    for row in rows:
        payload = row.to_dict(url=display_url(row))
        payload["duplicate_of"] = duplicates.get(int(row.id))
        groups.setdefault(row.approval_status or "pending", []).append(payload)
    return {
        "images": groups,
        "counts": {k: len(v) for k, v in groups.items()},
        "total": len(rows),
    }
