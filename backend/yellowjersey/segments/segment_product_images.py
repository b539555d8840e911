from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.extensions import db
from yellowjersey.models import Product, ProductImage
from yellowjersey.services.image_review_service import (
    display_url,
    listing_image_owner,
    listing_images,
    set_primary,
    sync_canonical_images,
    sync_listing_document,
)
from yellowjersey.utils import storage
from yellowjersey.utils.auth import current_user

product_images_bp = Blueprint("product_images_bp", __name__, url_prefix="/api/products")


def _owned_product(product_id: int):
    u = current_user()
    if not u:
        return None, (jsonify({"ok": False, "error": "Unauthorized"}), 401)
    product = db.session.get(Product, int(product_id))
    if product is None:
        return None, (jsonify({"ok": False, "error": "Product not found"}), 404)
    if int(product.user_id) != int(u.id):
        return None, (jsonify({"ok": False, "error": "You can only manage images on your own listings"}), 403)
    return product, None


def _image_source(product: Product) -> str | None:
    column, _owner_id = listing_image_owner(product)
    if column is None:
        return None
    return "listing" if column.key == "product_id" else "canonical"


def _listing_payload(product: Product) -> dict:
    return {
        "ok": True,
        "images": [r.to_dict(url=display_url(r)) for r in listing_images(product)],
        "imageSource": _image_source(product),
        "canonicalProductId": product.canonical_product_id,
        "document": product.get_images(),
    }


def _resync(product: Product, image: ProductImage | None = None) -> None:
    if image is not None and image.canonical_product_id is not None:
        sync_canonical_images(int(image.canonical_product_id))
    sync_listing_document(product)


@product_images_bp.get("/<int:product_id>/images")
def list_images(product_id: int):
    product, err = _owned_product(product_id)
    if err:
        return err
    return jsonify(_listing_payload(product)), 200


@product_images_bp.patch("/<int:product_id>/images")
def update_images(product_id: int):
    product, err = _owned_product(product_id)
    if err:
        return err
    rows = {int(r.id): r for r in listing_images(product)}
    if not rows and product.canonical_product_id is None:
        return jsonify({"ok": False, "error": "Product has no canonical product"}), 400

    data = request.get_json(silent=True) or {}
    action = (data.get("action") or "").strip().lower()

    if action == "set_primary":
        try:
            image = rows.get(int(data.get("imageId")))
        except (TypeError, ValueError):
            image = None
        if image is None:
            return jsonify({"ok": False, "error": "Image not found"}), 404
        set_primary(image)
        sync_listing_document(product)
        db.session.commit()
        return jsonify(_listing_payload(product)), 200

    if action == "reorder":
        order = data.get("imageIds")
        if not isinstance(order, list) or not order:
            return jsonify({"ok": False, "error": "imageIds must be a non-empty list"}), 400
        try:
            ids = [int(i) for i in order]
        except (TypeError, ValueError):
            return jsonify({"ok": False, "error": "imageIds must be a list of ids"}), 400
        if set(ids) - set(rows):
            return jsonify({"ok": False, "error": "Image not found"}), 404
        for position, image_id in enumerate(ids):
            rows[image_id].sort_order = position
        _resync(product, rows[ids[0]])
        db.session.commit()
        return jsonify(_listing_payload(product)), 200

    return jsonify({"ok": False, "error": "action must be set_primary or reorder"}), 400


@product_images_bp.delete("/<int:product_id>/images")
def delete_image(product_id: int):
    product, err = _owned_product(product_id)
    if err:
        return err
    try:
        image_id = int(request.args.get("imageId") or "")
    except ValueError:
        return jsonify({"ok": False, "error": "imageId is required"}), 400
    image = {int(r.id): r for r in listing_images(product)}.get(image_id)
    if image is None:
        return jsonify({"ok": False, "error": "Image not found"}), 404

    owner_column, owner_id = listing_image_owner(product)
    canonical_id = image.canonical_product_id
    path = image.storage_path if image.is_downloaded else None
    was_primary = bool(image.is_primary)
    db.session.delete(image)
    db.session.flush()
    if was_primary:
        successor = (
            ProductImage.query.filter(owner_column == owner_id)
            .order_by(ProductImage.sort_order.asc(), ProductImage.id.asc())
            .first()
        )
        if successor is not None:
            successor.is_primary = True
    if canonical_id is not None:
        sync_canonical_images(int(canonical_id))
    sync_listing_document(product)
    db.session.commit()
    if path:
        storage.delete_objects([path])
    return jsonify(_listing_payload(product)), 200
