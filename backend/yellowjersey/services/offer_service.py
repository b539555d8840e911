from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import func, or_

from yellowjersey.extensions import db
from yellowjersey.models import Offer, OfferHistory, Product, User
from yellowjersey.models.offer import OFFER_STATUSES, OPEN_OFFER_STATUSES
from yellowjersey.services.errors import ServiceError


OFFER_TTL_DAYS = 7
PAYMENT_WINDOW_HOURS = 48


def _percentage_off(original: float, amount: float) -> float:
    if not original:
        return 0.0
    return round((float(original) - float(amount)) / float(original) * 100.0, 2)


def _amount(raw, field_name: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise ServiceError(400, f"{field_name} must be a number")
    if value <= 0:
        raise ServiceError(400, f"{field_name} must be greater than 0")
    return round(value, 2)


def _history(offer: Offer, action: str, actor_id: int | None, *, previous=None, new=None, message=None) -> None:
    db.session.add(
        OfferHistory(
            offer_id=int(offer.id),
            action_type=action,
            offered_by_id=actor_id,
            previous_amount=previous,
            new_amount=new,
            message=message,
        )
    )


def _load(offer_id) -> Offer:
    try:
        oid = int(offer_id)
    except (TypeError, ValueError):
        raise ServiceError(400, "Invalid offer id")
    offer = db.session.get(Offer, oid)
    if offer is None:
        raise ServiceError(404, "Offer not found")
    return offer


def _ensure_live(offer: Offer, now: datetime) -> None:
    if offer.is_expired(now):
        raise ServiceError(400, "This offer has expired")


def create_offer(buyer: User, product_id, amount, message: str | None = None) -> Offer:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ServiceError(400, "productId is required")
    offer_amount = _amount(amount, "offerAmount")
    product = db.session.get(Product, pid)
    if product is None:
        raise ServiceError(404, "Product not found")
    if int(product.user_id) == int(buyer.id):
        raise ServiceError(400, "You cannot make an offer on your own product")
    if not product.is_listed():
        raise ServiceError(400, "This product is not available for offers")
    price = float(product.price or 0.0)
    if offer_amount >= price:
        raise ServiceError(400, "Offer must be below the asking price")

    now = datetime.utcnow()
    offer = Offer(
        product_id=int(product.id),
        buyer_id=int(buyer.id),
        seller_id=int(product.user_id),
        original_price=price,
        offer_amount=offer_amount,
        offer_percentage=_percentage_off(price, offer_amount),
        status="pending",
        message=(message or "").strip()[:1000] or None,
        expires_at=now + timedelta(days=OFFER_TTL_DAYS),
        created_at=now,
    )
    db.session.add(offer)
    db.session.flush()
    _history(offer, "created", int(buyer.id), new=offer_amount, message=offer.message)
    db.session.commit()
    current_app.logger.info("offer_created offer_id=%s product_id=%s amount=%.2f", offer.id, product.id, offer_amount)
    return offer


def list_offers(user: User, *, role: str = "all", statuses: list[str] | None = None, product_id=None, page: int = 1, limit: int = 20) -> dict:
    role = (role or "all").strip().lower()
    base = Offer.query
    if role == "buyer":
        base = base.filter(Offer.buyer_id == int(user.id))
    elif role == "seller":
        base = base.filter(Offer.seller_id == int(user.id))
    else:
        base = base.filter(or_(Offer.buyer_id == int(user.id), Offer.seller_id == int(user.id)))
    if product_id not in (None, ""):
        try:
            base = base.filter(Offer.product_id == int(product_id))
        except (TypeError, ValueError):
            raise ServiceError(400, "Invalid productId")

    counts = dict(
        base.with_entities(Offer.status, func.count(Offer.id)).group_by(Offer.status).all()
    )
    stats = {"total": int(sum(counts.values()))}
    for status in ("pending", "accepted", "rejected", "countered", "expired"):
        stats[status] = int(counts.get(status, 0))

    query = base
    wanted = [s for s in (statuses or []) if s in OFFER_STATUSES]
    if wanted:
        query = query.filter(Offer.status.in_(wanted))
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 20), 100))
    total = query.count()
    rows = query.order_by(Offer.created_at.desc(), Offer.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "offers": [r.to_dict() for r in rows],
        "total": int(total),
        "page": page,
        "limit": limit,
        "stats": stats,
    }


def accept_offer(user: User, offer_id) -> Offer:
    offer = _load(offer_id)
    if int(offer.seller_id) != int(user.id):
        raise ServiceError(403, "Only the seller can accept this offer")
    if offer.status not in OPEN_OFFER_STATUSES:
        raise ServiceError(400, f"Cannot accept an offer that is {offer.status}")
    now = datetime.utcnow()
    _ensure_live(offer, now)

    offer.status = "accepted"
    offer.payment_status = "pending"
    offer.payment_deadline = now + timedelta(hours=PAYMENT_WINDOW_HOURS)
    _history(offer, "accepted", int(user.id), new=float(offer.offer_amount))

    product = db.session.get(Product, int(offer.product_id))
    if product is not None:
        product.listing_status = "pending"

    competing = Offer.query.filter(
        Offer.product_id == offer.product_id,
        Offer.id != offer.id,
        Offer.status.in_(OPEN_OFFER_STATUSES),
    ).all()
    for other in competing:
        other.status = "rejected"
        _history(other, "rejected", int(user.id), message="Another offer was accepted")
    db.session.commit()
    current_app.logger.info("offer_accepted offer_id=%s auto_rejected=%s", offer.id, len(competing))
    return offer


def reject_offer(user: User, offer_id) -> Offer:
    offer = _load(offer_id)
    uid = int(user.id)
    if uid == int(offer.seller_id):
        if offer.status != "pending":
            raise ServiceError(400, "Only pending offers can be rejected")
    elif uid == int(offer.buyer_id):
        if offer.status != "countered":
            raise ServiceError(400, "Only counter offers can be declined")
    else:
        raise ServiceError(403, "You cannot reject this offer")
    offer.status = "rejected"
    _history(offer, "rejected", uid)
    db.session.commit()
    return offer


def counter_offer(user: User, offer_id, new_amount, message: str | None = None) -> Offer:
    offer = _load(offer_id)
    amount = _amount(new_amount, "newAmount")
    uid = int(user.id)
    current = float(offer.offer_amount)
    if uid == int(offer.seller_id):
        if offer.status != "pending":
            raise ServiceError(400, "Only pending offers can be countered")
        if amount <= current:
            raise ServiceError(400, "Counter offer must be higher than the current offer")
    elif uid == int(offer.buyer_id):
        if offer.status != "countered":
            raise ServiceError(400, "You can only counter a seller's counter offer")
        if amount >= current:
            raise ServiceError(400, "Counter offer must be lower than the seller's counter")
    else:
        raise ServiceError(403, "You cannot counter this offer")
    if amount >= float(offer.original_price):
        raise ServiceError(400, "Counter offer must be below the original price")
    now = datetime.utcnow()
    _ensure_live(offer, now)

    offer.offer_amount = amount
    offer.offer_percentage = _percentage_off(offer.original_price, amount)
    offer.status = "countered"
    offer.expires_at = now + timedelta(days=OFFER_TTL_DAYS)
    _history(offer, "countered", uid, previous=current, new=amount, message=(message or "").strip() or None)
    db.session.commit()
    return offer


def cancel_offer(user: User, offer_id) -> Offer:
    offer = _load(offer_id)
    if int(offer.buyer_id) != int(user.id):
        raise ServiceError(403, "Only the buyer can cancel this offer")
    if offer.status not in OPEN_OFFER_STATUSES:
        raise ServiceError(400, f"Cannot cancel an offer that is {offer.status}")
    offer.status = "cancelled"
    _history(offer, "cancelled", int(user.id))
    db.session.commit()
    return offer


def offer_history(user: User, offer_id) -> list[dict]:
    offer = _load(offer_id)
    if int(user.id) not in (int(offer.buyer_id), int(offer.seller_id)):
        raise ServiceError(403, "Forbidden")
    rows = OfferHistory.query.filter_by(offer_id=int(offer.id)).order_by(OfferHistory.created_at.asc(), OfferHistory.id.asc()).all()
    return [r.to_dict() for r in rows]


def expire_overdue_offers(now: datetime | None = None) -> int:
    now = now or datetime.utcnow()
    rows = Offer.query.filter(Offer.status.in_(OPEN_OFFER_STATUSES), Offer.expires_at < now).all()
    for offer in rows:
        offer.status = "expired"
        _history(offer, "expired", None)
    db.session.commit()
    return len(rows)
