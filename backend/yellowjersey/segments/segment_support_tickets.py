from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.services import ticket_service
from yellowjersey.services.errors import ServiceError
from yellowjersey.services.support_faqs import faqs_for
from yellowjersey.utils.auth import current_user
from yellowjersey.utils.rate_limit import rate_limit

support_bp = Blueprint("support_bp", __name__, url_prefix="/api/support")


def _unauthorized():
    return jsonify({"ok": False, "error": "Unauthorized"}), 401


@support_bp.post("/tickets")
@rate_limit("support_ticket_create", 3600, 10, scope="user")
def create_ticket():
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        ticket = ticket_service.create_ticket(u, data)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "ticket": ticket.to_dict()}), 201


@support_bp.get("/tickets")
def list_tickets():
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        limit = int(request.args.get("limit") or 50)
    except ValueError:
        limit = 50
    try:
        tickets = ticket_service.list_tickets(u, status=request.args.get("status"), limit=limit)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "tickets": tickets, "count": len(tickets)}), 200


@support_bp.get("/tickets/<int:ticket_id>")
def get_ticket(ticket_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        detail = ticket_service.ticket_detail(u, ticket_id)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, **detail}), 200


@support_bp.patch("/tickets/<int:ticket_id>")
def update_ticket(ticket_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        ticket = ticket_service.update_ticket(u, ticket_id, data)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "ticket": ticket.to_dict()}), 200


@support_bp.get("/tickets/<int:ticket_id>/messages")
def list_messages(ticket_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    try:
        items = ticket_service.list_messages(u, ticket_id)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "messages": items}), 200


@support_bp.post("/tickets/<int:ticket_id>/messages")
@rate_limit("support_message", 60, 20, scope="user")
def add_message(ticket_id: int):
    u = current_user()
    if not u:
        return _unauthorized()
    data = request.get_json(silent=True) or {}
    try:
        msg = ticket_service.add_message(u, ticket_id, data)
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "message": msg.to_dict()}), 201


@support_bp.get("/faqs")
def faqs():
    items = faqs_for(request.args.get("category"))
    return jsonify({"ok": True, "faqs": items}), 200
