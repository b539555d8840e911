from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.services import offer_service
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils.auth import current_user
from yellowjersey.utils.rate_limit import rate_limit

offers_bp = Blueprint("offers_bp", __name__, url_prefix="/api/offers")


def _unauthorized():
    return jsonify({"ok": False, "error": "Unauthorized"}), 401


@offers_bp.post("")
@rate_limit("offer_create", 3600, 30, scope="user")
def create_offer():
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        offer = offer_service.create_offer(u, data.get("productId"), data.get("offerAmount"), data.get("message"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "offer": offer.to_dict()}), 201


@offers_bp.get("")
def list_offers():
    u = current_user()
    if not u:
        return _unauthorized()
    statuses = [s.strip().lower() for s in (request.args.get("status") or "").split(",") if s.strip()]
    try:
        result = offer_service.list_offers(
            u,
            role=request.args.get("role") or "all",
            statuses=statuses,
            product_id=request.args.get("productId"),
            page=int(request.args.get("page") or 1),
            limit=int(request.args.get("limit") or 20),
        )
    except ValueError:
        return jsonify({"ok": False, "error": "page and limit must be numbers"}), 400
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, **result}), 200


@offers_bp.get("/<int:offer_id>/history")
def offer_history(offer_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        items = offer_service.offer_history(u, offer_id)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "history": items}), 200


def _transition(offer_id: int, action):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        offer = action(u, offer_id)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "offer": offer.to_dict()}), 200


@offers_bp.post("/<int:offer_id>/accept")
def accept(offer_id: int):
    return _transition(offer_id, offer_service.accept_offer)


@offers_bp.post("/<int:offer_id>/reject")
def reject(offer_id: int):
    return _transition(offer_id, offer_service.reject_offer)


@offers_bp.post("/<int:offer_id>/cancel")
def cancel(offer_id: int):
    return _transition(offer_id, offer_service.cancel_offer)


@offers_bp.post("/<int:offer_id>/counter")
def counter(offer_id: int):
    data = request.get_json(silent=True) or {}
    return _transition(
        offer_id,
        lambda u, oid: offer_service.counter_offer(u, oid, data.get("newAmount"), data.get("message")),
    )
