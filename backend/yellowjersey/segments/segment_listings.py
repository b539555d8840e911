from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.extensions import db
from yellowjersey.services import listing_service
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils.auth import current_user
from yellowjersey.utils.rate_limit import rate_limit

listings_bp = Blueprint("listings_bp", __name__, url_prefix="/api/marketplace/listings")


def _unauthorized():
    return jsonify({"ok": False, "error": "Unauthorized"}), 401


def _service_error(e: ServiceError):
    db.session.rollback()
    return jsonify(e.to_payload()), e.status


@listings_bp.get("")
def my_listings():
    u = current_user()
    if not u:
        return _unauthorized()
    items = listing_service.list_my_listings(u, request.args.get("status"))
    return jsonify({"ok": True, "listings": items, "count": len(items)}), 200


@listings_bp.post("")
@rate_limit("listing_create", 3600, 60, scope="user")
def create_listing():
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        product = listing_service.create_listing(u, data)
    except ServiceError as e:
        return _service_error(e)
    return jsonify({"ok": True, "listing": product.to_dict()}), 201


@listings_bp.put("/<int:product_id>")
def update_listing(product_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        product = listing_service.update_listing(u, product_id, data)
    except ServiceError as e:
        return _service_error(e)
    return jsonify({"ok": True, "listing": product.to_dict()}), 200


@listings_bp.post("/<int:product_id>/sold")
def mark_sold(product_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        product = listing_service.mark_sold(u, product_id)
    except ServiceError as e:
        return _service_error(e)
    return jsonify({"ok": True, "message": "Listing marked as sold", "listing": product.to_dict()}), 200


@listings_bp.delete("/<int:product_id>/sold")
def unmark_sold(product_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        product = listing_service.unmark_sold(u, product_id)
    except ServiceError as e:
        return _service_error(e)
    return jsonify({"ok": True, "message": "Listing is for sale again", "listing": product.to_dict()}), 200


@listings_bp.post("/upload-image")
@rate_limit("listing_image_upload", 3600, 200, scope="user")
def upload_image():
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        image = listing_service.store_upload(u, request.files.get("file"), request.form.get("listingId"))
    except ServiceError as e:
        return _service_error(e)
    return jsonify({"ok": True, "image": image}), 201
