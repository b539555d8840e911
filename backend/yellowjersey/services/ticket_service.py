from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, or_

from yellowjersey.extensions import db
from yellowjersey.models import (
    Purchase,
    SupportTicket,
    TicketAttachment,
    TicketHistory,
    TicketMessage,
    User,
)
from yellowjersey.models.support import ACTIVE_TICKET_STATUSES, TICKET_CATEGORIES, TICKET_STATUSES
from yellowjersey.services.checkout_service import reference_number
from yellowjersey.services.errors import ServiceError
from yellowjersey.services.escrow_service import FundsStatus, can_transition


HIGH_PRIORITY_CATEGORIES = ("damaged", "wrong_item")
DISPUTE_CATEGORIES = ("item_not_received", "item_not_as_described", "damaged", "wrong_item", "refund_request")
MAX_ATTACHMENTS = 5


def determine_priority(category: str, funds_status: str | None) -> str:
    if category in HIGH_PRIORITY_CATEGORIES:
        return "high"
    if funds_status == FundsStatus.HELD and category != "general_question":
        return "high"
    return "medium"


def _history(ticket: SupportTicket, action: str, actor_id: int | None, *, old=None, new=None, notes=None) -> None:
    db.session.add(
        TicketHistory(
            ticket_id=int(ticket.id),
            action=action,
            old_value=old,
            new_value=new,
            performed_by=actor_id,
            notes=notes,
        )
    )


def _attachments(ticket: SupportTicket, user: User, items, message_id: int | None = None) -> int:
    if not items:
        return 0
    if not isinstance(items, list):
        raise ServiceError(400, "attachments must be a list")
    added = 0
    for att in items[:MAX_ATTACHMENTS]:
        if not isinstance(att, dict):
            continue
        url = (att.get("url") or "").strip()
        if not url:
            continue
        db.session.add(
            TicketAttachment(
                ticket_id=int(ticket.id),
                message_id=message_id,
                uploaded_by=int(user.id),
                file_name=(att.get("fileName") or url.rsplit("/", 1)[-1])[:255],
                file_url=url[:1024],
                file_type=(att.get("fileType") or None),
                file_size=att.get("fileSize") if isinstance(att.get("fileSize"), int) else None,
            )
        )
        added += 1
    if added:
        _history(ticket, "attachment_added", int(user.id), new=str(added))
    return added


def create_ticket(user: User, data: dict) -> SupportTicket:
    purchase_id = data.get("purchaseId")
    category = (data.get("category") or "").strip()
    subject = (data.get("subject") or "").strip()
    description = (data.get("description") or "").strip()
    if not purchase_id or not category or not subject or not description:
        raise ServiceError(400, "Missing required fields: purchaseId, category, subject, description")
    if category not in TICKET_CATEGORIES:
        raise ServiceError(400, "Invalid category")
    try:
        purchase = db.session.get(Purchase, int(purchase_id))
    except (TypeError, ValueError):
        purchase = None
    if purchase is None:
        raise ServiceError(404, "Purchase not found")
    if int(purchase.buyer_id) != int(user.id):
        raise ServiceError(403, "Not authorised to create ticket for this purchase")

    existing = SupportTicket.query.filter(
        SupportTicket.purchase_id == purchase.id,
        SupportTicket.status.in_(ACTIVE_TICKET_STATUSES),
    ).first()
    if existing:
        raise ServiceError(
            409,
            "An active ticket already exists for this purchase",
            {"existingTicketId": int(existing.id), "ticketNumber": existing.ticket_number},
        )

    ticket = SupportTicket(
        ticket_number=reference_number("TKT"),
        user_id=int(user.id),
        purchase_id=int(purchase.id),
        product_id=int(purchase.product_id),
        seller_id=int(purchase.seller_id),
        category=category,
        subject=subject[:200],
        description=description,
        status="open",
        priority=determine_priority(category, purchase.funds_status),
    )
    db.session.add(ticket)
    db.session.flush()

    first = TicketMessage(ticket_id=int(ticket.id), sender_id=int(user.id), sender_type="buyer", message=description)
    db.session.add(first)
    db.session.flush()
    _history(ticket, "created", int(user.id), new="open")
    _attachments(ticket, user, data.get("attachments"), message_id=int(first.id))

    if category in DISPUTE_CATEGORIES and purchase.funds_status == FundsStatus.HELD:
        if can_transition(purchase.funds_status, FundsStatus.DISPUTED):
            purchase.funds_status = FundsStatus.DISPUTED
    db.session.commit()
    current_app.logger.info(
        "support_ticket_created ticket_number=%s purchase_id=%s priority=%s",
        ticket.ticket_number,
        purchase.id,
        ticket.priority,
    )
    return ticket


def _message_counts(ticket_ids: list[int]) -> dict[int, int]:
    if not ticket_ids:
        return {}
    rows = (
        db.session.query(TicketMessage.ticket_id, func.count(TicketMessage.id))
        .filter(TicketMessage.ticket_id.in_(ticket_ids), TicketMessage.is_internal.is_(False))
        .group_by(TicketMessage.ticket_id)
        .all()
    )
    return {int(tid): int(n) for tid, n in rows}


def list_tickets(user: User, *, status: str | None = None, limit: int = 50) -> list[dict]:
    query = SupportTicket.query.filter(
        or_(SupportTicket.user_id == int(user.id), SupportTicket.seller_id == int(user.id))
    )
    status = (status or "").strip().lower()
    if status and status != "all":
        if status == "active":
            query = query.filter(SupportTicket.status.in_(ACTIVE_TICKET_STATUSES))
        elif status in TICKET_STATUSES:
            query = query.filter(SupportTicket.status == status)
        else:
            raise ServiceError(400, "Invalid status filter")
    limit = max(1, min(int(limit or 50), 200))
    rows = query.order_by(SupportTicket.created_at.desc(), SupportTicket.id.desc()).limit(limit).all()
    counts = _message_counts([int(r.id) for r in rows])
    purchases = {
        int(p.id): p
        for p in Purchase.query.filter(Purchase.id.in_([r.purchase_id for r in rows if r.purchase_id])).all()
    } if rows else {}
    out = []
    for row in rows:
        payload = row.to_dict()
        payload["message_count"] = counts.get(int(row.id), 0)
        purchase = purchases.get(int(row.purchase_id or 0))
        payload["order_number"] = purchase.order_number if purchase else None
        out.append(payload)
    return out


def _load_for(user: User, ticket_id) -> tuple[SupportTicket, str]:
    try:
        ticket = db.session.get(SupportTicket, int(ticket_id))
    except (TypeError, ValueError):
        ticket = None
    if ticket is None:
        raise ServiceError(404, "Ticket not found")
    uid = int(user.id)
    if uid == int(ticket.user_id):
        return ticket, "buyer"
    if ticket.seller_id is not None and uid == int(ticket.seller_id):
        return ticket, "seller"
    raise ServiceError(403, "Not authorised to view this ticket")


def ticket_detail(user: User, ticket_id) -> dict:
    ticket, role = _load_for(user, ticket_id)
    messages = (
        TicketMessage.query.filter_by(ticket_id=int(ticket.id), is_internal=False)
        .order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())
        .all()
    )
    attachments = TicketAttachment.query.filter_by(ticket_id=int(ticket.id)).order_by(TicketAttachment.id.asc()).all()
    history = TicketHistory.query.filter_by(ticket_id=int(ticket.id)).order_by(TicketHistory.id.asc()).all()
    purchase = db.session.get(Purchase, int(ticket.purchase_id)) if ticket.purchase_id else None
    return {
        "ticket": ticket.to_dict(),
        "purchase": purchase.to_dict() if purchase else None,
        "messages": [m.to_dict() for m in messages],
        "attachments": [a.to_dict() for a in attachments],
        "history": [h.to_dict() for h in history],
        "userRole": role,
    }


def update_ticket(user: User, ticket_id, data: dict) -> SupportTicket:
    ticket, _role = _load_for(user, ticket_id)
    requested = (data.get("status") or "").strip().lower()
    # The creator may only accept a resolution by closing the ticket.
    if requested == "closed" and int(user.id) == int(ticket.user_id) and ticket.status == "resolved":
        old = ticket.status
        ticket.status = "closed"
        ticket.closed_at = datetime.utcnow()
        _history(ticket, "status_changed", int(user.id), old=old, new="closed")
        db.session.commit()
        return ticket
    raise ServiceError(400, "No valid updates provided")


def list_messages(user: User, ticket_id) -> list[dict]:
    ticket, _role = _load_for(user, ticket_id)
    rows = (
        TicketMessage.query.filter_by(ticket_id=int(ticket.id), is_internal=False)
        .order_by(TicketMessage.created_at.asc(), TicketMessage.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]


def add_message(user: User, ticket_id, data: dict) -> TicketMessage:
    body = (data.get("message") or "").strip()
    if not body:
        raise ServiceError(400, "Message is required")
    try:
        ticket, role = _load_for(user, ticket_id)
    except ServiceError as e:
        if e.status == 403:
            raise ServiceError(403, "Not authorised to add messages to this ticket")
        raise
    if ticket.status in ("closed", "resolved"):
        raise ServiceError(400, "Cannot add messages to a closed or resolved ticket")

    msg = TicketMessage(ticket_id=int(ticket.id), sender_id=int(user.id), sender_type=role, message=body[:5000])
    db.session.add(msg)
    db.session.flush()
    _history(ticket, "message_added", int(user.id), new=role)

    old = ticket.status
    if old == "open" and role == "buyer":
        ticket.status = "awaiting_response"
    elif old == "awaiting_response" and role == "seller":
        ticket.status = "in_review"
    if ticket.status != old:
        _history(ticket, "status_changed", int(user.id), old=old, new=ticket.status)

    _attachments(ticket, user, data.get("attachments"), message_id=int(msg.id))
    db.session.commit()
    return msg
