from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from yellowjersey.extensions import db
from yellowjersey.models import CanonicalProduct, ImageDiscoveryJob, ProductImage
from yellowjersey.services import image_review_service as review
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils.auth import current_user, is_admin

admin_images_bp = Blueprint("admin_images_bp", __name__, url_prefix="/api/admin/images")


def _require_admin():
    u = current_user()
    if not u:
        return None, (jsonify({"ok": False, "error": "Unauthorized"}), 401)
    if not is_admin(u):
        return None, (jsonify({"ok": False, "error": "Forbidden"}), 403)
    return u, None


def _image_or_404(image_id: int):
    image = db.session.get(ProductImage, int(image_id))
    if image is None:
        return None, (jsonify({"ok": False, "error": "Image not found"}), 404)
    return image, None


def _flag(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@admin_images_bp.get("/queue")
def review_queue():
    _u, err = _require_admin()
    if err:
        return err
    try:
        limit = int(request.args.get("limit") or 50)
    except (TypeError, ValueError):
        limit = 50
    items = review.discovery_queue(limit)
    return jsonify({"ok": True, "products": items, "count": len(items)}), 200


@admin_images_bp.get("/products/<int:canonical_id>")
def product_images(canonical_id: int):
    _u, err = _require_admin()
    if err:
        return err
    canonical = db.session.get(CanonicalProduct, int(canonical_id))
    if canonical is None:
        return jsonify({"ok": False, "error": "Product not found"}), 404
    payload = review.grouped_images(int(canonical_id))
    payload["ok"] = True
    payload["product"] = canonical.to_dict()
    return jsonify(payload), 200


@admin_images_bp.post("/<int:image_id>/status")
def update_status(image_id: int):
    u, err = _require_admin()
    if err:
        return err
    image, err = _image_or_404(image_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        review.set_image_status(image, data.get("status"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    current_app.logger.info("image_status_changed image_id=%s status=%s admin_id=%s", image.id, image.approval_status, u.id)
    return jsonify({"ok": True, "image": image.to_dict(url=review.display_url(image))}), 200


@admin_images_bp.post("/<int:image_id>/primary")
def make_primary(image_id: int):
    _u, err = _require_admin()
    if err:
        return err
    image, err = _image_or_404(image_id)
    if err:
        return err
    review.set_primary(image)
    return jsonify({"ok": True, "image": image.to_dict(url=review.display_url(image))}), 200


@admin_images_bp.post("/approve")
def approve():
    _u, err = _require_admin()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    canonical_id = data.get("canonicalProductId")
    image_ids = data.get("imageIds")
    if not canonical_id or not isinstance(image_ids, list):
        return jsonify({"ok": False, "error": "canonicalProductId and imageIds are required"}), 400
    try:
        result = review.approve_batch(
            int(canonical_id),
            image_ids,
            primary_image_id=data.get("primaryImageId"),
            reject_others=_flag(data.get("rejectOthers"), True),
        )
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "imageIds must be a list of ids"}), 400
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, **result}), 200


@admin_images_bp.post("/products/<int:canonical_id>/complete")
def complete(canonical_id: int):
    u, err = _require_admin()
    if err:
        return err
    try:
        result = review.mark_complete(int(canonical_id), admin_id=int(u.id))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    except Exception:
        return jsonify({"ok": False, "error": "Failed to complete review"}), 500
    return jsonify({"ok": True, **result}), 200


@admin_images_bp.post("/discover")
def discover():
    u, err = _require_admin()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    try:
        canonical_id = int(data.get("canonicalProductId"))
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "canonicalProductId is required"}), 400
    if db.session.get(CanonicalProduct, canonical_id) is None:
        return jsonify({"ok": False, "error": "Product not found"}), 404

    active = review.active_discovery_job(canonical_id)
    if active:
        return jsonify({"ok": True, "jobId": int(active.id), "status": active.status, "existing": True}), 200

    job = ImageDiscoveryJob(canonical_product_id=canonical_id, status="queued", requested_by=int(u.id))
    db.session.add(job)
    db.session.commit()
    status = review.schedule_discovery(int(job.id))
    return jsonify({"ok": True, "jobId": int(job.id), "status": status}), 202


@admin_images_bp.get("/discover/<int:job_id>")
def discover_status(job_id: int):
    _u, err = _require_admin()
    if err:
        return err
    job = db.session.get(ImageDiscoveryJob, int(job_id))
    if job is None:
        return jsonify({"ok": False, "error": "Job not found"}), 404
    return jsonify({"ok": True, "job": job.to_dict()}), 200
