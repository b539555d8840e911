from __future__ import annotations

import os
import secrets
import string
import time
from datetime import datetime, timedelta

from flask import current_app

from yellowjersey.extensions import db
from yellowjersey.integrations.payments.base import CheckoutSessionRequest, LineItem
from yellowjersey.integrations.payments.factory import build_payments_provider
from yellowjersey.models import Offer, Product, User
from yellowjersey.services.errors import ServiceError


CURRENCY = "aud"
BUYER_FEE_RATE = 0.005
PLATFORM_FEE_RATE = 0.03
CHECKOUT_EXPIRY_SECONDS = 30 * 60
FUNDS_HOLD_DAYS = 7
SHIPPING_COUNTRIES = ("AU", "NZ")

DELIVERY_OPTIONS = {
    "uber_express": {"cost": 15.0, "label": "Uber Express (1-hour delivery)"},
    "auspost": {"cost": 12.0, "label": "Australia Post (2-5 business days)"},
    "pickup": {"cost": 0.0, "label": "Local Pickup"},
    "shipping": {"cost": None, "label": "Shipping"},
}

_REF_ALPHABET = string.ascii_uppercase + string.digits


def _money(value: float) -> float:
    return round(float(value) + 1e-9, 2)


def to_cents(value: float) -> int:
    return int(round(float(value) * 100))


def reference_number(prefix: str, now: datetime | None = None) -> str:
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(5))
    return f"{prefix}-{now.strftime('%Y%m%d')}-{suffix}"


def delivery_cost(method: str, product: Product) -> tuple[float, str]:
    option = DELIVERY_OPTIONS.get((method or "").strip().lower())
    if option is None:
        raise ServiceError(400, "Invalid delivery method")
    if option["cost"] is None:
        cost = float(product.shipping_cost or 0.0) if product.shipping_available else 0.0
        return _money(cost), option["label"]
    return _money(option["cost"]), option["label"]


def compute_fees(item_price: float, delivery: float = 0.0) -> dict:
    item = _money(item_price)
    buyer_fee = _money(item * BUYER_FEE_RATE)
    platform_fee = _money(item * PLATFORM_FEE_RATE)
    return {
        "item_price": item,
        "delivery_cost": _money(delivery),
        "buyer_fee": buyer_fee,
        "platform_fee": platform_fee,
        "seller_payout": _money(item - platform_fee),
        "total_amount": _money(item + delivery + buyer_fee),
    }


def app_url() -> str:
    return (os.getenv("APP_URL") or "http://localhost:3000").strip().rstrip("/")


def _validate_purchasable(product: Product | None, buyer: User) -> Product:
    if product is None:
        raise ServiceError(404, "Product not found")
    if not product.is_active:
        raise ServiceError(400, "This product is no longer available")
    if product.is_sold():
        raise ServiceError(400, "This product has already been sold")
    if int(product.user_id) == int(buyer.id):
        raise ServiceError(400, "You cannot purchase your own product")
    return product


def _line_items(product: Product, fees: dict, delivery_label: str) -> list[LineItem]:
    images = []
    if (product.primary_image_url or "").startswith("https://"):
        images.append(product.primary_image_url)
    items = [
        LineItem(
            name=product.display_name or "Marketplace item",
            unit_amount_cents=to_cents(fees["item_price"]),
            description=(product.description or "")[:250],
            images=images,
        )
    ]
    if fees["delivery_cost"] > 0:
        items.append(LineItem(name=delivery_label, unit_amount_cents=to_cents(fees["delivery_cost"])))
    if fees["buyer_fee"] > 0:
        items.append(LineItem(name="Buyer Protection & Service Fee", unit_amount_cents=to_cents(fees["buyer_fee"])))
    return items


def _session_metadata(product: Product, buyer: User, method: str, fees: dict) -> dict:
    return {
        "product_id": str(product.id),
        "buyer_id": str(buyer.id),
        "seller_id": str(product.user_id),
        "item_price": f"{fees['item_price']:.2f}",
        "delivery_method": method,
        "delivery_cost": f"{fees['delivery_cost']:.2f}",
        "buyer_fee": f"{fees['buyer_fee']:.2f}",
        "total_amount": f"{fees['total_amount']:.2f}",
        "platform_fee": f"{fees['platform_fee']:.2f}",
        "seller_payout": f"{fees['seller_payout']:.2f}",
    }


def _create_session(product: Product, buyer: User, method: str, item_price: float, extra_metadata: dict | None = None):
    cost, label = delivery_cost(method, product)
    fees = compute_fees(item_price, cost)
    metadata = _session_metadata(product, buyer, method, fees)
    metadata.update(extra_metadata or {})
    req = CheckoutSessionRequest(
        line_items=_line_items(product, fees, label),
        success_url=f"{app_url()}/marketplace/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_url()}/marketplace/checkout/cancel?product_id={product.id}",
        metadata=metadata,
        customer_email=buyer.email,
        collect_shipping=method != "pickup",
        shipping_countries=SHIPPING_COUNTRIES,
        currency=CURRENCY,
        expires_at=int(time.time()) + CHECKOUT_EXPIRY_SECONDS,
    )
    session = build_payments_provider().create_checkout_session(req)
    current_app.logger.info(
        "checkout_session_created provider=%s session_id=%s product_id=%s buyer_id=%s total=%.2f",
        session.provider,
        session.session_id,
        product.id,
        buyer.id,
        fees["total_amount"],
    )
    return session, fees


def create_product_checkout(buyer: User, product_id, delivery_method: str) -> dict:
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise ServiceError(400, "productId is required")
    product = _validate_purchasable(db.session.get(Product, pid), buyer)
    method = (delivery_method or "").strip().lower()
    session, fees = _create_session(product, buyer, method, float(product.price or 0.0))
    return {"sessionId": session.session_id, "url": session.url, "breakdown": fees}


def create_offer_checkout(buyer: User, offer_id, delivery_method: str | None = None) -> dict:
    try:
        oid = int(offer_id)
    except (TypeError, ValueError):
        raise ServiceError(400, "offerId is required")
    offer = db.session.get(Offer, oid)
    if offer is None:
        raise ServiceError(404, "Offer not found")
    if int(offer.buyer_id) != int(buyer.id):
        raise ServiceError(403, "Only the buyer can pay for this offer")
    if offer.status != "accepted":
        raise ServiceError(400, "Offer has not been accepted")
    if offer.payment_status == "paid":
        raise ServiceError(400, "Offer has already been paid")
    if offer.payment_deadline and offer.payment_deadline < datetime.utcnow():
        raise ServiceError(400, "Payment deadline has passed")
    product = db.session.get(Product, int(offer.product_id))
    if product is None:
        raise ServiceError(404, "Product not found")
    if product.is_sold():
        raise ServiceError(400, "This product has already been sold")

    method = (delivery_method or "pickup").strip().lower()
    session, fees = _create_session(
        product,
        buyer,
        method,
        float(offer.offer_amount),
        {
            "offer_id": str(offer.id),
            "payment_type": "offer",
            "original_price": f"{float(offer.original_price or 0.0):.2f}",
        },
    )
    offer.stripe_session_id = session.session_id
    db.session.commit()
    return {"sessionId": session.session_id, "url": session.url, "breakdown": fees}


def funds_release_at(now: datetime | None = None) -> datetime:
    return (now or datetime.utcnow()) + timedelta(days=FUNDS_HOLD_DAYS)
