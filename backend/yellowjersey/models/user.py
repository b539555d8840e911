from datetime import datetime
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from yellowjersey.extensions import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, index=True, nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    role = db.Column(db.String(32), nullable=False, default="buyer")

    # individual | bicycle_store
    account_type = db.Column(db.String(32), nullable=False, default="individual")
    # Set once a store has been verified by the marketplace team.
    bicycle_store = db.Column(db.Boolean, nullable=False, default=False)

    business_name = db.Column(db.String(160), nullable=True)
    logo_url = db.Column(db.String(1024), nullable=True)
    store_description = db.Column(db.Text, nullable=True)
    store_phone = db.Column(db.String(32), nullable=True)
    store_address = db.Column(db.String(255), nullable=True)
    store_website = db.Column(db.String(255), nullable=True)

    # Payment processor connected account used for seller payouts.
    payout_account_id = db.Column(db.String(64), nullable=True)

    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str) -> bool:
        return check_password_hash(self.password_hash, raw_password)

    @property
    def is_verified_store(self) -> bool:
        return (self.account_type or "") == "bicycle_store" and bool(self.bicycle_store)

    def display_name(self) -> str:
        return (self.business_name or "").strip() or (self.name or "").strip() or "Seller"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": getattr(self, "phone", None),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "role": self.role or "buyer",
            "account_type": self.account_type or "individual",
            "bicycle_store": bool(getattr(self, "bicycle_store", False)),
            "business_name": (getattr(self, "business_name", None) or ""),
            "logo_url": (getattr(self, "logo_url", None) or ""),
        }

    def to_store_dict(self) -> dict:
        return {
            "id": self.id,
            "business_name": self.display_name(),
            "logo_url": self.logo_url or None,
            "description": self.store_description or "",
            "phone": self.store_phone or "",
            "address": self.store_address or "",
            "website": self.store_website or "",
            "verified": self.is_verified_store,
        }
