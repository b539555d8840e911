from __future__ import annotations

import requests
from flask import Blueprint, jsonify, request, current_app

from yellowjersey.integrations.common import provider_failure
from yellowjersey.services.checkout_service import create_offer_checkout, create_product_checkout
from yellowjersey.services.delivery_service import check_eligibility
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils.auth import current_user
from yellowjersey.utils.rate_limit import rate_limit

checkout_bp = Blueprint("checkout_bp", __name__, url_prefix="/api/stripe")
delivery_bp = Blueprint("delivery_bp", __name__, url_prefix="/api/delivery")


def _provider_error(e: Exception):
    if isinstance(e, RuntimeError):
        status, message = provider_failure(e)
    else:
        status, message = 502, "Payment provider request failed"
    current_app.logger.warning("checkout_provider_failed status=%s err=%s", status, e)
    return jsonify({"ok": False, "error": message}), status


@checkout_bp.post("/create-checkout")
@rate_limit("checkout", 60, 20, scope="user")
def create_checkout():
    u = current_user()
    if not u:
        return jsonify({"ok": False, "error": "Unauthorised - please sign in to purchase"}), 401
    data = request.get_json(silent=True) or {}
    if not data.get("productId"):
        return jsonify({"ok": False, "error": "productId is required"}), 400
    try:
        result = create_product_checkout(u, data.get("productId"), data.get("deliveryMethod") or "pickup")
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    except (RuntimeError, requests.RequestException) as e:
        return _provider_error(e)
    return jsonify({"ok": True, **result}), 200


@checkout_bp.post("/create-checkout-offer")
@rate_limit("checkout", 60, 20, scope="user")
def create_checkout_offer():
    u = current_user()
    if not u:
        return jsonify({"ok": False, "error": "Unauthorised - please sign in to purchase"}), 401
    data = request.get_json(silent=True) or {}
    if not data.get("offerId"):
        return jsonify({"ok": False, "error": "offerId is required"}), 400
    try:
        result = create_offer_checkout(u, data.get("offerId"), data.get("deliveryMethod"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    except (RuntimeError, requests.RequestException) as e:
        return _provider_error(e)
    return jsonify({"ok": True, **result}), 200


@delivery_bp.post("/check-eligibility")
@rate_limit("delivery_eligibility", 60, 30)
def delivery_eligibility():
    data = request.get_json(silent=True) or {}
    try:
        result = check_eligibility(data.get("address"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify(result), 200
