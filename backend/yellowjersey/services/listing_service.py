from __future__ import annotations

import re
from datetime import datetime

from flask import current_app
from PIL import UnidentifiedImageError

from yellowjersey.extensions import db
from yellowjersey.models import CanonicalProduct, Product, ProductImage, User
from yellowjersey.services.errors import ServiceError
from yellowjersey.services.image_review_service import sync_canonical_images, sync_product_images
from yellowjersey.utils import storage
from yellowjersey.utils.image_fingerprint import probe_image


SELLER_STATUSES = ("draft", "active")
MAX_LISTING_IMAGES = 12
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
UPLOAD_MIME_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
}

# request key -> (column, kind)
_FIELDS = {
    "title": ("display_name", "text"),
    "description": ("description", "text"),
    "price": ("price", "price"),
    "marketplaceCategory": ("marketplace_category", "text"),
    "marketplaceSubcategory": ("marketplace_subcategory", "text"),
    "marketplaceLevel3Category": ("marketplace_level_3_category", "text"),
    "bikeType": ("bike_type", "text"),
    "frameSize": ("frame_size", "text"),
    "conditionRating": ("condition_rating", "text"),
    "modelYear": ("model_year", "year"),
    "shippingAvailable": ("shipping_available", "bool"),
    "shippingCost": ("shipping_cost", "money"),
    "pickupLocation": ("pickup_location", "text"),
}


def normalize_name(text: str) -> str:
    cleaned = re.sub(r"[^\w\s-]", "", (text or "").lower().strip())
    return re.sub(r"\s+", " ", cleaned).strip()


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) == 1
    return str(value or "").strip().lower() in ("1", "true", "yes", "y", "on")


def _maybe_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce(key: str, kind: str, raw):
    if kind == "text":
        text = str(raw or "").strip()
        if key == "title" and not text:
            raise ServiceError(400, "title is required")
        return text or None
    if kind == "bool":
        return _flag(raw)
    if kind == "year":
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ServiceError(400, f"{key} must be a year")
    if raw in (None, "") and kind == "money":
        return None
    try:
        value = round(float(raw), 2)
    except (TypeError, ValueError):
        raise ServiceError(400, f"{key} must be a number")
    if kind == "price" and value <= 0:
        raise ServiceError(400, "price must be greater than 0")
    if value < 0:
        raise ServiceError(400, f"{key} cannot be negative")
    return value


def _apply_status(product: Product, raw) -> None:
    status = str(raw or "").strip().lower()
    if status not in SELLER_STATUSES:
        raise ServiceError(400, "listingStatus must be draft or active")
    product.listing_status = status
    product.is_active = status == "active"


def ensure_canonical_product(title: str, *, upc: str | None = None, manufacturer: str | None = None,
                             category: str | None = None) -> CanonicalProduct:
    """Find the catalogue product by UPC, else by normalised name, creating it when missing."""
    normalized = normalize_name(title)
    normalized_upc = re.sub(r"\s+", "", str(upc or "").strip().upper()) or None
    query = CanonicalProduct.query
    if normalized_upc:
        existing = query.filter(CanonicalProduct.upc == normalized_upc).first()
    else:
        existing = query.filter(CanonicalProduct.normalized_name == normalized).first()
    if existing is not None:
        return existing
    canonical = CanonicalProduct(
        normalized_name=normalized,
        upc=normalized_upc,
        manufacturer=str(manufacturer or "").strip() or None,
        marketplace_category=category,
    )
    db.session.add(canonical)
    db.session.flush()
    return canonical


def _image_rows(product: Product, images) -> list[ProductImage]:
    if images in (None, []):
        return []
    if not isinstance(images, list) or not all(isinstance(i, dict) for i in images):
        raise ServiceError(400, "images must be a list of objects")
    if len(images) > MAX_LISTING_IMAGES:
        raise ServiceError(400, f"A listing can have at most {MAX_LISTING_IMAGES} images")
    ordered = []
    for index, item in enumerate(images):
        url = str(item.get("url") or "").strip()
        card = str(item.get("cardUrl") or "").strip()
        if not (url or card):
            raise ServiceError(400, "Each image needs a url or cardUrl")
        try:
            order = int(item.get("order", index))
        except (TypeError, ValueError):
            order = index
        ordered.append((order, index, item, url, card))
    ordered.sort(key=lambda entry: (entry[0], entry[1]))

    rows = []
    for position, (_order, _index, item, url, card) in enumerate(ordered):
        storage_path = str(item.get("storagePath") or "").strip() or None
        rows.append(
            ProductImage(
                product_id=int(product.id),
                storage_path=storage_path,
                # Uploaded files are served locally; anything else is a hosted delivery url.
                cloudinary_url=None if storage_path else (url or None),
                card_url=card or url,
                thumbnail_url=str(item.get("thumbnailUrl") or "").strip() or None,
                detail_url=str(item.get("detailUrl") or "").strip() or url or card,
                is_downloaded=True,
                is_primary=position == 0,
                sort_order=position,
                approval_status="approved",
                approved_at=datetime.utcnow(),
                width=_maybe_int(item.get("width")),
                height=_maybe_int(item.get("height")),
                source="upload",
            )
        )
    return rows


def create_listing(seller: User, data: dict) -> Product:
    title = _coerce("title", "text", data.get("title"))
    price = _coerce("price", "price", data.get("price"))
    values = {
        column: _coerce(key, kind, data.get(key))
        for key, (column, kind) in _FIELDS.items()
        if key not in ("title", "price") and key in data
    }
    status = str(data.get("listingStatus") or "draft").strip().lower()
    if status not in SELLER_STATUSES:
        raise ServiceError(400, "listingStatus must be draft or active")

    canonical_id = data.get("canonicalProductId")
    if canonical_id not in (None, ""):
        try:
            canonical = db.session.get(CanonicalProduct, int(canonical_id))
        except (TypeError, ValueError):
            raise ServiceError(400, "canonicalProductId must be an id")
        if canonical is None:
            raise ServiceError(404, "Canonical product not found")
    else:
        canonical = ensure_canonical_product(
            title,
            upc=data.get("upc"),
            manufacturer=data.get("brand") or data.get("manufacturer"),
            category=data.get("marketplaceCategory"),
        )

    product = Product(
        user_id=int(seller.id),
        canonical_product_id=int(canonical.id),
        display_name=title,
        price=price,
        listing_type="private_listing",
        qoh=1,
    )
    for column, value in values.items():
        setattr(product, column, value)
    if not product.marketplace_category and canonical.marketplace_category:
        product.marketplace_category = canonical.marketplace_category
    _apply_status(product, status)

    db.session.add(product)
    db.session.flush()
    for row in _image_rows(product, data.get("images")):
        db.session.add(row)
    db.session.flush()
    if not sync_product_images(int(product.id)):
        sync_canonical_images(int(canonical.id))
    db.session.commit()
    current_app.logger.info(
        "listing_created product_id=%s seller_id=%s canonical_product_id=%s status=%s",
        product.id,
        seller.id,
        canonical.id,
        product.listing_status,
    )
    return product


def owned_listing(user: User, product_id) -> Product:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ServiceError(400, "Invalid listing id")
    product = db.session.get(Product, pid)
    if product is None:
        raise ServiceError(404, "Listing not found")
    if int(product.user_id) != int(user.id):
        raise ServiceError(403, "Forbidden")
    return product


def update_listing(user: User, product_id, data: dict) -> Product:
    product = owned_listing(user, product_id)
    changed = []
    for key, (column, kind) in _FIELDS.items():
        if key not in data:
            continue
        setattr(product, column, _coerce(key, kind, data.get(key)))
        changed.append(column)
    if "listingStatus" in data:
        if product.is_sold():
            raise ServiceError(400, "Sold listings cannot change status")
        _apply_status(product, data.get("listingStatus"))
        changed.append("listing_status")
    if not changed:
        raise ServiceError(400, "No fields to update")
    db.session.commit()
    current_app.logger.info("listing_updated product_id=%s fields=%s", product.id, ",".join(changed))
    return product


def mark_sold(user: User, product_id) -> Product:
    product = owned_listing(user, product_id)
    if product.sold_at is not None:
        raise ServiceError(400, "Listing is already marked as sold")
    product.sold_at = datetime.utcnow()
    product.is_active = False
    product.listing_status = "sold"
    db.session.commit()
    return product


def unmark_sold(user: User, product_id) -> Product:
    product = owned_listing(user, product_id)
    if product.sold_at is None:
        raise ServiceError(400, "Listing is not marked as sold")
    product.sold_at = None
    product.is_active = True
    product.listing_status = "active"
    db.session.commit()
    return product


def list_my_listings(user: User, status: str | None = None) -> list[dict]:
    query = Product.query.filter(Product.user_id == int(user.id))
    wanted = (status or "").strip().lower()
    if wanted:
        query = query.filter(Product.listing_status == wanted)
    rows = query.order_by(Product.created_at.desc(), Product.id.desc()).all()
    return [p.to_dict() for p in rows]


def store_upload(user: User, file_storage, listing_id=None) -> dict:
    """
    Validate and store an uploaded listing photo. With a listing id the photo
    is attached to that listing; without one it is kept for a later create call.
    """
    if file_storage is None or not (file_storage.filename or "").strip():
        raise ServiceError(400, "No file provided")
    mime = (file_storage.mimetype or "").strip().lower()
    if mime not in UPLOAD_MIME_TYPES:
        raise ServiceError(400, "Invalid file type. Only JPEG, PNG, and WebP are supported.")
    data = file_storage.stream.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise ServiceError(400, "File size exceeds 10MB limit")
    try:
        meta = probe_image(data)
    except UnidentifiedImageError:
        raise ServiceError(400, "File is not a valid image")

    product = owned_listing(user, listing_id) if listing_id not in (None, "") else None
    owner_key = f"listings/{int(user.id)}/{int(product.id) if product else 'temp'}"
    path = storage.build_storage_path(owner_key, UPLOAD_MIME_TYPES[mime])
    size = storage.save_bytes(path, data)
    url = storage.public_url(path)

    payload = {
        "id": None,
        "url": url,
        "cardUrl": url,
        "thumbnailUrl": url,
        "storagePath": path,
        "width": meta["width"],
        "height": meta["height"],
        "fileSize": size,
    }
    if product is None:
        return payload

    existing = ProductImage.query.filter(ProductImage.product_id == int(product.id)).count()
    if existing >= MAX_LISTING_IMAGES:
        storage.delete_objects([path])
        raise ServiceError(400, f"A listing can have at most {MAX_LISTING_IMAGES} images")
    row = ProductImage(
        product_id=int(product.id),
        storage_path=path,
        card_url=url,
        thumbnail_url=url,
        detail_url=url,
        is_downloaded=True,
        is_primary=existing == 0,
        sort_order=existing,
        approval_status="approved",
        approved_at=datetime.utcnow(),
        width=meta["width"],
        height=meta["height"],
        file_size=size,
        mime_type=meta["mime_type"],
        phash=meta["phash"],
        source="upload",
    )
    db.session.add(row)
    db.session.flush()
    sync_product_images(int(product.id))
    db.session.commit()
    current_app.logger.info("listing_image_uploaded product_id=%s image_id=%s bytes=%s", product.id, row.id, size)
    payload["id"] = int(row.id)
    return payload
