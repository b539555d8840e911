from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.integrations.payments.factory import payment_health
from yellowjersey.services.payment_webhook_service import process_stripe_webhook

webhooks_bp = Blueprint("webhooks_bp", __name__, url_prefix="/api/stripe")


@webhooks_bp.get("/webhook")
def stripe_webhook_diagnostics():
    health = payment_health()
    return jsonify({"ok": health["status"] != "misconfigured", "endpoint": "/api/stripe/webhook", **health}), 200


@webhooks_bp.post("/webhook")
def stripe_webhook():
    raw = request.get_data() or b""
    body, status = process_stripe_webhook(raw=raw, signature=request.headers.get("Stripe-Signature"))
    return jsonify(body), status
