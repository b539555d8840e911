from datetime import datetime

from yellowjersey.extensions import db


OFFER_STATUSES = ("pending", "accepted", "rejected", "countered", "expired", "cancelled")
OPEN_OFFER_STATUSES = ("pending", "countered")


class Offer(db.Model):
    __tablename__ = "offers"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    original_price = db.Column(db.Float, nullable=False)
    offer_amount = db.Column(db.Float, nullable=False)
    offer_percentage = db.Column(db.Float, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    message = db.Column(db.Text, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    # Populated once accepted.
    payment_status = db.Column(db.String(16), nullable=True)
    payment_deadline = db.Column(db.DateTime, nullable=True)
    stripe_session_id = db.Column(db.String(128), nullable=True)
    purchase_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        return self.expires_at is not None and self.expires_at < now

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "product_id": int(self.product_id),
            "buyer_id": int(self.buyer_id),
            "seller_id": int(self.seller_id),
            "original_price": float(self.original_price or 0.0),
            "offer_amount": float(self.offer_amount or 0.0),
            "offer_percentage": float(self.offer_percentage) if self.offer_percentage is not None else None,
            "status": self.status or "pending",
            "message": self.message or "",
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "payment_status": self.payment_status,
            "payment_deadline": self.payment_deadline.isoformat() if self.payment_deadline else None,
            "purchase_id": self.purchase_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class OfferHistory(db.Model):
    __tablename__ = "offer_history"

    id = db.Column(db.Integer, primary_key=True)
    offer_id = db.Column(db.Integer, db.ForeignKey("offers.id"), nullable=False, index=True)
    # created | accepted | rejected | countered | cancelled | expired
    action_type = db.Column(db.String(16), nullable=False)
    offered_by_id = db.Column(db.Integer, nullable=True)
    previous_amount = db.Column(db.Float, nullable=True)
    new_amount = db.Column(db.Float, nullable=True)
    message = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "offer_id": int(self.offer_id),
            "action_type": self.action_type,
            "offered_by_id": self.offered_by_id,
            "previous_amount": self.previous_amount,
            "new_amount": self.new_amount,
            "message": self.message or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
