from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime

from flask import current_app

from yellowjersey.extensions import db
from yellowjersey.integrations.payments.factory import payments_provider_name
from yellowjersey.integrations.payments.signature import SignatureVerificationError, verify_stripe_signature
from yellowjersey.models import Offer, Product, Purchase, WebhookEvent
from yellowjersey.services.checkout_service import funds_release_at, reference_number
from yellowjersey.utils.observability import get_request_id


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _shipping_address(session: dict) -> dict | None:
    details = session.get("shipping_details") or (session.get("collected_information") or {}).get("shipping_details")
    if not isinstance(details, dict):
        return None
    address = details.get("address") or {}
    return {
        "name": details.get("name"),
        "line1": address.get("line1"),
        "line2": address.get("line2"),
        "city": address.get("city"),
        "state": address.get("state"),
        "postal_code": address.get("postal_code"),
        "country": address.get("country"),
    }


def handle_checkout_completed(session: dict) -> str:
    session_id = (session.get("id") or "").strip()
    if not session_id:
        return "missing_session_id"
    if Purchase.query.filter_by(stripe_session_id=session_id).first():
        return "duplicate"

    meta = session.get("metadata") or {}
    product_id = _as_int(meta.get("product_id"))
    product = db.session.get(Product, product_id) if product_id else None
    if product is None:
        current_app.logger.warning("webhook_checkout_product_missing session_id=%s product_id=%s", session_id, product_id)
        return "product_missing"
    if product.is_sold():
        # Paid twice for one item; support handles the refund.
        current_app.logger.warning("webhook_checkout_already_sold session_id=%s product_id=%s", session_id, product.id)
        return "already_sold"

    customer = session.get("customer_details") or {}
    offer_id = _as_int(meta.get("offer_id"))
    now = datetime.utcnow()
    purchase = Purchase(
        order_number=reference_number("ORD", now),
        buyer_id=_as_int(meta.get("buyer_id")),
        seller_id=_as_int(meta.get("seller_id")) or int(product.user_id),
        product_id=int(product.id),
        offer_id=offer_id,
        item_price=_as_float(meta.get("item_price")),
        original_price=_as_float(meta.get("original_price"), float(product.price or 0.0)),
        shipping_cost=_as_float(meta.get("delivery_cost")),
        buyer_fee=_as_float(meta.get("buyer_fee")),
        total_amount=_as_float(meta.get("total_amount"), _as_float(session.get("amount_total")) / 100.0),
        platform_fee=_as_float(meta.get("platform_fee")),
        seller_payout_amount=_as_float(meta.get("seller_payout")),
        delivery_method=(meta.get("delivery_method") or "pickup"),
        shipping_address_json=json.dumps(_shipping_address(session)) if _shipping_address(session) else None,
        buyer_email=customer.get("email"),
        buyer_phone=customer.get("phone"),
        stripe_session_id=session_id,
        stripe_payment_intent_id=session.get("payment_intent"),
        status="paid",
        payment_status="paid",
        payout_status="pending",
        funds_status="held",
        funds_release_at=funds_release_at(now),
        purchase_date=now,
    )
    db.session.add(purchase)

    product.sold_at = now
    product.is_active = False
    product.listing_status = "sold"
    product.qoh = 0

    if offer_id is not None:
        offer = db.session.get(Offer, offer_id)
        if offer is not None:
            db.session.flush()
            offer.payment_status = "paid"
            offer.purchase_id = int(purchase.id)
    current_app.logger.info(
        "purchase_created order_number=%s product_id=%s offer_id=%s",
        purchase.order_number,
        product.id,
        offer_id,
    )
    return "purchase_created"


def handle_payment_failed(intent: dict) -> str:
    offer_id = _as_int((intent.get("metadata") or {}).get("offer_id"))
    if offer_id is None:
        return "ignored"
    offer = db.session.get(Offer, offer_id)
    if offer is None:
        return "offer_missing"
    offer.payment_status = "failed"
    return "offer_payment_failed"


_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "payment_intent.payment_failed": handle_payment_failed,
}


def process_stripe_webhook(*, raw: bytes, signature: str | None) -> tuple[dict, int]:
    secret = (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
    if secret:
        if not signature:
            return {"error": "Missing stripe-signature header"}, 400
        try:
            verify_stripe_signature(raw or b"", signature, secret)
        except SignatureVerificationError as e:
            current_app.logger.warning("stripe_webhook_bad_signature err=%s", e)
            return {"error": "Invalid signature"}, 400
    elif payments_provider_name() == "stripe":
        return {"error": "Webhook secret not configured"}, 500

    try:
        event = json.loads((raw or b"{}").decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {"error": "Invalid payload"}, 400
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        return {"error": "Invalid payload"}, 400

    event_type = event["type"].strip()
    obj = (event.get("data") or {}).get("object") or {}
    event_id = str(event.get("id") or "").strip()
    if not event_id:
        event_id = hashlib.sha256(raw or b"").hexdigest()[:32]

    if WebhookEvent.query.filter_by(provider="stripe", event_id=event_id).first():
        return {"received": True, "replayed": True}, 200

    handler = _HANDLERS.get(event_type)
    try:
        outcome = handler(obj) if handler else "ignored"
        db.session.add(
            WebhookEvent(
                provider="stripe",
                event_id=event_id,
                event_type=event_type,
                reference=(obj.get("id") or "")[:128] or None,
                status=outcome,
                processed_at=datetime.utcnow(),
                request_id=get_request_id() or None,
                payload_hash=hashlib.sha256(raw or b"").hexdigest(),
            )
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("stripe_webhook_handler_failed event_id=%s type=%s", event_id, event_type)
        return {"error": "Webhook handler failed"}, 500

    current_app.logger.info("stripe_webhook_processed event_id=%s type=%s outcome=%s", event_id, event_type, outcome)
    return {"received": True, "outcome": outcome}, 200
