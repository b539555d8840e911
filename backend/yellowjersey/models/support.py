from datetime import datetime
import sqlalchemy as sa

from yellowjersey.extensions import db


TICKET_CATEGORIES = (
    "item_not_received",
    "item_not_as_described",
    "damaged",
    "wrong_item",
    "refund_request",
    "shipping_issue",
    "general_question",
)
TICKET_STATUSES = ("open", "awaiting_response", "in_review", "escalated", "resolved", "closed")
ACTIVE_TICKET_STATUSES = ("open", "awaiting_response", "in_review", "escalated")
TICKET_PRIORITIES = ("low", "medium", "high", "urgent")
HISTORY_ACTIONS = (
    "created",
    "status_changed",
    "assigned",
    "escalated",
    "message_added",
    "attachment_added",
    "resolved",
    "reopened",
    "priority_changed",
)


class SupportTicket(db.Model):
    __tablename__ = "support_tickets"

    id = db.Column(db.Integer, primary_key=True)
    ticket_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, nullable=True)
    seller_id = db.Column(db.Integer, nullable=True, index=True)

    category = db.Column(db.String(32), nullable=False)
    subject = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(24), nullable=False, default="open", index=True)
    priority = db.Column(db.String(16), nullable=False, default="medium")

    assigned_to = db.Column(db.Integer, nullable=True)
    resolution = db.Column(db.String(64), nullable=True)
    resolution_notes = db.Column(db.Text, nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "ticket_number": self.ticket_number,
            "user_id": int(self.user_id),
            "purchase_id": self.purchase_id,
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "category": self.category,
            "subject": self.subject,
            "description": self.description,
            "status": self.status or "open",
            "priority": self.priority or "medium",
            "resolution": self.resolution,
            "resolution_notes": self.resolution_notes,
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class TicketMessage(db.Model):
    __tablename__ = "ticket_messages"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("support_tickets.id"), nullable=False, index=True)
    sender_id = db.Column(db.Integer, nullable=False)
    # buyer | seller | support
    sender_type = db.Column(db.String(16), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "ticket_id": int(self.ticket_id),
            "sender_id": int(self.sender_id),
            "sender_type": self.sender_type,
            "message": self.message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TicketAttachment(db.Model):
    __tablename__ = "ticket_attachments"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("support_tickets.id"), nullable=False, index=True)
    message_id = db.Column(db.Integer, nullable=True)
    uploaded_by = db.Column(db.Integer, nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_url = db.Column(db.String(1024), nullable=False)
    file_type = db.Column(db.String(64), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "ticket_id": int(self.ticket_id),
            "message_id": self.message_id,
            "file_name": self.file_name,
            "file_url": self.file_url,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TicketHistory(db.Model):
    __tablename__ = "ticket_history"

    id = db.Column(db.Integer, primary_key=True)
    ticket_id = db.Column(db.Integer, db.ForeignKey("support_tickets.id"), nullable=False, index=True)
    action = db.Column(db.String(24), nullable=False)
    old_value = db.Column(db.String(64), nullable=True)
    new_value = db.Column(db.String(64), nullable=True)
    performed_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "performed_by": self.performed_by,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
