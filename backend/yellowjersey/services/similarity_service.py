"""
Similar-products ranking for the product detail page.

Candidates are scored by weighted attribute matches against the source
product; ties fall back to recency. Only candidates that share at least one
attribute (score > 0) are returned.
"""
from __future__ import annotations

import re
from datetime import datetime

from sqlalchemy import or_

from yellowjersey.models import Product, ProductImage

DEFAULT_LIMIT = 12
MAX_LIMIT = 24
CANDIDATE_POOL_SIZE = 150

WEIGHTS = {
    "subcategory": 5,
    "category": 3,
    "level_3": 4,
    "bike_type": 4,
    "frame_size": 3,
    "price_close": 2,
    "price_near": 1,
    "condition": 2,
    "brand": 3,
}

PRICE_CLOSE_RATIO = 0.30
PRICE_NEAR_RATIO = 0.50

KNOWN_BRANDS = (
    "Specialized", "Trek", "Giant", "Cannondale", "Scott", "Bianchi", "Cervelo",
    "Pinarello", "Colnago", "BMC", "Canyon", "Orbea", "Merida", "Fuji", "Felt",
    "Kona", "Santa Cruz", "Yeti", "Norco", "GT", "Cube", "Focus", "Liv", "Salsa",
    "Surly", "All-City", "Marin", "Jamis", "Raleigh", "Schwinn", "Diamondback",
    "Shimano", "SRAM", "Campagnolo", "Zipp", "Enve", "DT Swiss", "Mavic",
    "Fulcrum", "Continental", "Vittoria", "Schwalbe", "Garmin", "Wahoo", "Rapha",
    "Castelli", "Assos", "Pearl Izumi", "Giro", "POC", "Oakley", "Smith", "Bell",
    "Kask", "MET",
)

_WORD_SPLIT = re.compile(r"[\s\-_]+")


def clamp_limit(raw) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if value < 1:
        return DEFAULT_LIMIT
    return min(value, MAX_LIMIT)


def extract_brand(text: str | None) -> str | None:
    name = (text or "").strip()
    if not name:
        return None
    low = name.lower()
    for brand in KNOWN_BRANDS:
        if low.startswith(brand.lower()):
            return brand
    first = _WORD_SPLIT.split(name, maxsplit=1)[0]
    if len(first) > 2:
        return first
    return None


def _brand_of(product) -> str | None:
    return extract_brand(getattr(product, "display_name", None) or getattr(product, "description", None))


def score_candidate(source, candidate) -> int:
    score = 0

    def _same(attr: str) -> bool:
        src_val = getattr(source, attr, None)
        return bool(src_val) and getattr(candidate, attr, None) == src_val

    if _same("marketplace_subcategory"):
        score += WEIGHTS["subcategory"]
    if _same("marketplace_category"):
        score += WEIGHTS["category"]
    if _same("marketplace_level_3_category"):
        score += WEIGHTS["level_3"]
    if _same("bike_type"):
        score += WEIGHTS["bike_type"]
    if _same("frame_size"):
        score += WEIGHTS["frame_size"]

    src_price = float(getattr(source, "price", 0) or 0)
    cand_price = float(getattr(candidate, "price", 0) or 0)
    if src_price and cand_price:
        diff = abs(cand_price - src_price) / src_price
        if diff <= PRICE_CLOSE_RATIO:
            score += WEIGHTS["price_close"]
        elif diff <= PRICE_NEAR_RATIO:
            score += WEIGHTS["price_near"]

    if _same("condition_rating"):
        score += WEIGHTS["condition"]

    src_brand = _brand_of(source)
    cand_brand = _brand_of(candidate)
    if src_brand and cand_brand and src_brand.lower() == cand_brand.lower():
        score += WEIGHTS["brand"]

    return score


def rank_similar(source, candidates, limit: int = DEFAULT_LIMIT) -> list[tuple[object, int]]:
    scored = [(c, score_candidate(source, c)) for c in candidates]
    scored.sort(
        key=lambda pair: (pair[1], getattr(pair[0], "created_at", None) or datetime.min),
        reverse=True,
    )
    return [pair for pair in scored if pair[1] > 0][: max(0, int(limit))]


def _has_document_image(product: Product) -> bool:
    for item in product.get_images():
        if isinstance(item, dict) and (item.get("cloudinaryUrl") or item.get("cardUrl")):
            return True
    return False


def _canonical_ids_with_images(canonical_ids: set[int]) -> set[int]:
    if not canonical_ids:
        return set()
    rows = (
        ProductImage.query.with_entities(ProductImage.canonical_product_id)
        .filter(
            ProductImage.canonical_product_id.in_(list(canonical_ids)),
            ProductImage.approval_status == "approved",
            or_(ProductImage.cloudinary_url.isnot(None), ProductImage.card_url.isnot(None)),
        )
        .distinct()
        .all()
    )
    return {int(r[0]) for r in rows}


def candidate_pool(source: Product) -> list[Product]:
    query = Product.query.filter(
        Product.is_active.is_(True),
        Product.id != source.id,
        or_(Product.listing_status.is_(None), Product.listing_status == "active"),
    )
    if source.marketplace_category:
        query = query.filter(Product.marketplace_category == source.marketplace_category)
    rows = query.order_by(Product.created_at.desc()).limit(CANDIDATE_POOL_SIZE).all()

    canonical_ids = {int(p.canonical_product_id) for p in rows if p.canonical_product_id and not _has_document_image(p)}
    with_canonical = _canonical_ids_with_images(canonical_ids)
    return [
        p for p in rows
        if _has_document_image(p) or (p.canonical_product_id and int(p.canonical_product_id) in with_canonical)
    ]


def find_similar_products(source: Product, limit: int = DEFAULT_LIMIT) -> list[dict]:
    out = []
    for product, score in rank_similar(source, candidate_pool(source), clamp_limit(limit)):
        payload = product.to_dict()
        payload["similarity_score"] = int(score)
        out.append(payload)
    return out
