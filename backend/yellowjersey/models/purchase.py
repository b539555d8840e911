from datetime import datetime
import json

from yellowjersey.extensions import db


class Purchase(db.Model):
    __tablename__ = "purchases"

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    buyer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    offer_id = db.Column(db.Integer, nullable=True)

    item_price = db.Column(db.Float, nullable=False, default=0.0)
    original_price = db.Column(db.Float, nullable=True)
    shipping_cost = db.Column(db.Float, nullable=False, default=0.0)
    buyer_fee = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    platform_fee = db.Column(db.Float, nullable=False, default=0.0)
    seller_payout_amount = db.Column(db.Float, nullable=False, default=0.0)

    # uber_express | auspost | pickup | shipping
    delivery_method = db.Column(db.String(32), nullable=False, default="pickup")
    shipping_address_json = db.Column(db.Text, nullable=True)
    buyer_email = db.Column(db.String(255), nullable=True)
    buyer_phone = db.Column(db.String(32), nullable=True)

    stripe_session_id = db.Column(db.String(128), nullable=True, unique=True, index=True)
    stripe_payment_intent_id = db.Column(db.String(128), nullable=True)

    # pending | confirmed | paid | shipped | delivered | cancelled | refunded
    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(24), nullable=False, default="pending")
    payout_status = db.Column(db.String(24), nullable=False, default="pending")
    # held | disputed | released | auto_released | refunded
    funds_status = db.Column(db.String(24), nullable=True, index=True)
    funds_release_at = db.Column(db.DateTime, nullable=True, index=True)
    funds_released_at = db.Column(db.DateTime, nullable=True)
    stripe_transfer_id = db.Column(db.String(128), nullable=True)
    payout_triggered_at = db.Column(db.DateTime, nullable=True)
    payout_error = db.Column(db.Text, nullable=True)

    purchase_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def shipping_address(self) -> dict | None:
        raw = (self.shipping_address_json or "").strip()
        if not raw:
            return None
        try:
            parsed = json.loads(raw)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "order_number": self.order_number,
            "buyer_id": int(self.buyer_id),
            "seller_id": int(self.seller_id),
            "product_id": int(self.product_id),
            "offer_id": int(self.offer_id) if self.offer_id is not None else None,
            "item_price": float(self.item_price or 0.0),
            "original_price": float(self.original_price) if self.original_price is not None else None,
            "shipping_cost": float(self.shipping_cost or 0.0),
            "buyer_fee": float(self.buyer_fee or 0.0),
            "total_amount": float(self.total_amount or 0.0),
            "platform_fee": float(self.platform_fee or 0.0),
            "seller_payout_amount": float(self.seller_payout_amount or 0.0),
            "delivery_method": self.delivery_method or "pickup",
            "shipping_address": self.shipping_address(),
            "status": self.status or "pending",
            "payment_status": self.payment_status or "pending",
            "payout_status": self.payout_status or "pending",
            "payout_error": self.payout_error,
            "funds_status": self.funds_status,
            "funds_release_at": self.funds_release_at.isoformat() if self.funds_release_at else None,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
        }
