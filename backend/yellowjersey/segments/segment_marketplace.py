from __future__ import annotations

from flask import Blueprint, jsonify, request, send_from_directory
from sqlalchemy import or_

from yellowjersey.extensions import db
from yellowjersey.models import Product, Purchase, StoreCategory, StoreService, User
from yellowjersey.services.similarity_service import clamp_limit, find_similar_products
from yellowjersey.utils import storage
from yellowjersey.utils.auth import current_user

marketplace_bp = Blueprint("marketplace_bp", __name__, url_prefix="/api/marketplace")
uploads_bp = Blueprint("uploads_bp", __name__, url_prefix="/api/uploads")

PURCHASE_STATUS_GROUPS = {
    "active": ("pending", "confirmed", "paid", "shipped"),
    "completed": ("delivered",),
}


def _int_arg(name: str, default: int, *, minimum: int = 1, maximum: int = 100) -> int:
    try:
        value = int(request.args.get(name) or default)
    except (TypeError, ValueError):
        value = default
    return max(minimum, min(value, maximum))


def _listed():
    return Product.query.filter(
        Product.is_active.is_(True),
        or_(Product.listing_status.is_(None), Product.listing_status == "active"),
    )


@marketplace_bp.get("/products")
def list_products():
    q = _listed()
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.filter(Product.marketplace_category == category)
    subcategory = (request.args.get("subcategory") or "").strip()
    if subcategory:
        q = q.filter(Product.marketplace_subcategory == subcategory)
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Product.display_name.ilike(like), Product.description.ilike(like)))

    page = _int_arg("page", 1, maximum=10000)
    page_size = _int_arg("pageSize", 24, maximum=100)
    total = q.count()
    rows = q.order_by(Product.created_at.desc(), Product.id.desc()).offset((page - 1) * page_size).limit(page_size).all()
    return jsonify(
        {
            "ok": True,
            "products": [p.to_dict() for p in rows],
            "total": int(total),
            "page": page,
            "pageSize": page_size,
            "hasMore": page * page_size < total,
        }
    ), 200


@marketplace_bp.get("/products/<int:product_id>")
def get_product(product_id: int):
    product = db.session.get(Product, int(product_id))
    if not product:
        return jsonify({"ok": False, "error": "Product not found"}), 404
    seller = db.session.get(User, int(product.user_id))
    payload = product.to_dict()
    payload["seller"] = {"id": seller.id, "name": seller.display_name()} if seller else None
    payload["store"] = seller.to_store_dict() if seller and seller.is_verified_store else None
    return jsonify({"ok": True, "product": payload}), 200


@marketplace_bp.get("/products/<int:product_id>/similar")
def similar_products(product_id: int):
    source = db.session.get(Product, int(product_id))
    if not source:
        return jsonify({"ok": False, "error": "Product not found"}), 404
    products = find_similar_products(source, clamp_limit(request.args.get("limit")))
    return jsonify(
        {
            "ok": True,
            "products": products,
            "count": len(products),
            "sourceCategory": source.marketplace_category,
            "sourceSubcategory": source.marketplace_subcategory,
        }
    ), 200


@marketplace_bp.get("/store/<int:store_id>")
def store_profile(store_id: int):
    store = db.session.get(User, int(store_id))
    if not store or not store.is_verified_store:
        return jsonify({"ok": False, "error": "Store not found"}), 404

    products = _listed().filter(Product.user_id == int(store.id)).order_by(Product.created_at.desc()).all()
    by_id = {int(p.id): p for p in products}
    categories = (
        StoreCategory.query.filter_by(user_id=int(store.id), is_active=True)
        .order_by(StoreCategory.display_order.asc(), StoreCategory.id.asc())
        .all()
    )
    grouped = []
    for cat in categories:
        items = [by_id[pid].to_dict() for pid in cat.product_ids if pid in by_id]
        grouped.append({"id": int(cat.id), "name": cat.name, "source": cat.source, "products": items})
    services = (
        StoreService.query.filter_by(user_id=int(store.id), is_active=True)
        .order_by(StoreService.display_order.asc(), StoreService.id.asc())
        .all()
    )
    return jsonify(
        {
            "ok": True,
            "store": store.to_store_dict(),
            "categories": grouped,
            "products": [p.to_dict() for p in products],
            "services": [s.to_dict() for s in services],
        }
    ), 200


def _party(user: User | None) -> dict | None:
    if not user:
        return None
    return {"id": int(user.id), "name": user.display_name(), "email": user.email}


@marketplace_bp.get("/purchases")
def list_purchases():
    u = current_user()
    if not u:
        return jsonify({"ok": False, "error": "Unauthorized"}), 401

    mode = (request.args.get("mode") or "buying").strip().lower()
    if mode not in ("buying", "selling"):
        return jsonify({"ok": False, "error": "mode must be buying or selling"}), 400
    owner_col = Purchase.buyer_id if mode == "buying" else Purchase.seller_id
    base = Purchase.query.filter(owner_col == int(u.id))

    counts = {
        "all": base.count(),
        "active": base.filter(Purchase.status.in_(PURCHASE_STATUS_GROUPS["active"])).count(),
        "completed": base.filter(Purchase.status.in_(PURCHASE_STATUS_GROUPS["completed"])).count(),
        "disputes": base.filter(Purchase.funds_status == "disputed").count(),
        "archived": 0,
    }

    status = (request.args.get("status") or "").strip().lower()
    q = base
    if status in PURCHASE_STATUS_GROUPS:
        q = q.filter(Purchase.status.in_(PURCHASE_STATUS_GROUPS[status]))
    elif status == "disputed":
        q = q.filter(Purchase.funds_status == "disputed")
    elif status and status != "all":
        q = q.filter(Purchase.status == status)

    page = _int_arg("page", 1, maximum=10000)
    page_size = _int_arg("pageSize", 20, maximum=100)
    total = q.count()
    rows = (
        q.order_by(Purchase.purchase_date.desc(), Purchase.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    product_ids = {int(r.product_id) for r in rows}
    other_ids = {int(r.seller_id if mode == "buying" else r.buyer_id) for r in rows}
    products = {int(p.id): p for p in Product.query.filter(Product.id.in_(product_ids)).all()} if product_ids else {}
    users = {int(x.id): x for x in User.query.filter(User.id.in_(other_ids)).all()} if other_ids else {}

    items = []
    for row in rows:
        payload = row.to_dict()
        product = products.get(int(row.product_id))
        payload["product"] = product.to_dict(include_images=False) if product else None
        if mode == "buying":
            payload["seller"] = _party(users.get(int(row.seller_id)))
        else:
            payload["buyer"] = _party(users.get(int(row.buyer_id)))
        items.append(payload)

    return jsonify(
        {
            "ok": True,
            "purchases": items,
            "pagination": {
                "page": page,
                "pageSize": page_size,
                "total": int(total),
                "totalPages": (int(total) + page_size - 1) // page_size,
            },
            "counts": counts,
        }
    ), 200


@uploads_bp.get("/<path:storage_path>")
def serve_upload(storage_path: str):
    return send_from_directory(storage.upload_root(), storage_path)
