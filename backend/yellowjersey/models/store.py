from datetime import datetime
import json
import sqlalchemy as sa

from yellowjersey.extensions import db


CATEGORY_SOURCES = ("lightspeed", "custom")


class StoreCategory(db.Model):
    __tablename__ = "store_categories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    source = db.Column(db.String(16), nullable=False, default="custom")
    lightspeed_category_id = db.Column(db.String(64), nullable=True)
    product_ids_json = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def product_ids(self) -> list[int]:
        raw = (self.product_ids_json or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return []
        out = []
        for item in parsed if isinstance(parsed, list) else []:
            try:
                out.append(int(item))
            except (TypeError, ValueError):
                continue
        return out

    @product_ids.setter
    def product_ids(self, value) -> None:
        self.product_ids_json = json.dumps([int(v) for v in (value or [])])

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "name": self.name,
            "source": self.source,
            "lightspeed_category_id": self.lightspeed_category_id,
            "product_ids": self.product_ids,
            "display_order": int(self.display_order or 0),
            "is_active": bool(self.is_active),
        }


class StoreService(db.Model):
    __tablename__ = "store_services"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    display_order = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "name": self.name,
            "description": self.description,
            "display_order": int(self.display_order or 0),
            "is_active": bool(self.is_active),
        }
