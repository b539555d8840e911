from datetime import datetime
import json
import sqlalchemy as sa

from yellowjersey.extensions import db


class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    # Seller user id
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    canonical_product_id = db.Column(db.Integer, db.ForeignKey("canonical_products.id"), nullable=True, index=True)

    display_name = db.Column(db.String(255), nullable=False, default="")
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Float, nullable=False, default=0.0)

    # Marketplace taxonomy: category > subcategory > level 3.
    marketplace_category = db.Column(db.String(64), nullable=True, index=True)
    marketplace_subcategory = db.Column(db.String(64), nullable=True, index=True)
    marketplace_level_3_category = db.Column(db.String(64), nullable=True)

    bike_type = db.Column(db.String(64), nullable=True)
    frame_size = db.Column(db.String(32), nullable=True)
    condition_rating = db.Column(db.String(32), nullable=True)
    model_year = db.Column(db.Integer, nullable=True)

    qoh = db.Column(db.Integer, nullable=False, default=1, server_default="1")
    # lightspeed | private_listing
    listing_type = db.Column(db.String(32), nullable=False, default="private_listing", server_default="private_listing")
    # active | pending | sold | draft (null means legacy active)
    listing_status = db.Column(db.String(24), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, server_default=sa.text("true"), index=True)
    sold_at = db.Column(db.DateTime, nullable=True)

    shipping_available = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    shipping_cost = db.Column(db.Float, nullable=True)
    pickup_location = db.Column(db.String(255), nullable=True)

    primary_image_url = db.Column(db.String(1024), nullable=True)
    # Denormalised image list kept in step with product_images by the image sync service.
    images_json = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_images(self) -> list:
        raw = (self.images_json or "").strip()
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except ValueError:
            return []
        return parsed if isinstance(parsed, list) else []

    def set_images(self, items: list) -> None:
        self.images_json = json.dumps(list(items or []))

    def is_sold(self) -> bool:
        return self.sold_at is not None or (self.listing_status or "") == "sold"

    def is_listed(self) -> bool:
        return bool(self.is_active) and (self.listing_status in (None, "active"))

    def to_dict(self, *, include_images: bool = True) -> dict:
        payload = {
            "id": self.id,
            "user_id": self.user_id,
            "canonical_product_id": self.canonical_product_id,
            "display_name": self.display_name or "",
            "description": self.description or "",
            "price": float(self.price or 0.0),
            "marketplace_category": self.marketplace_category,
            "marketplace_subcategory": self.marketplace_subcategory,
            "marketplace_level_3_category": self.marketplace_level_3_category,
            "bike_type": self.bike_type,
            "frame_size": self.frame_size,
            "condition_rating": self.condition_rating,
            "model_year": int(self.model_year) if self.model_year is not None else None,
            "qoh": int(self.qoh or 0),
            "listing_type": self.listing_type or "private_listing",
            "listing_status": self.listing_status,
            "is_active": bool(self.is_active),
            "sold_at": self.sold_at.isoformat() if self.sold_at else None,
            "shipping_available": bool(self.shipping_available),
            "shipping_cost": float(self.shipping_cost) if self.shipping_cost is not None else None,
            "pickup_location": self.pickup_location or "",
            "primary_image_url": self.primary_image_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_images:
            payload["images"] = self.get_images()
        return payload


class CanonicalProduct(db.Model):
    __tablename__ = "canonical_products"

    id = db.Column(db.Integer, primary_key=True)
    normalized_name = db.Column(db.String(255), nullable=False, default="")
    upc = db.Column(db.String(64), nullable=True, index=True)
    category = db.Column(db.String(64), nullable=True)
    manufacturer = db.Column(db.String(120), nullable=True)
    marketplace_category = db.Column(db.String(64), nullable=True)

    # Stamped when an admin finishes image QA for this product.
    image_qa_completed_at = db.Column(db.DateTime, nullable=True)
    image_qa_completed_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "normalized_name": self.normalized_name or "",
            "upc": self.upc or "",
            "category": self.category or "",
            "manufacturer": self.manufacturer or "",
            "marketplace_category": self.marketplace_category or "",
            "image_qa_completed_at": self.image_qa_completed_at.isoformat() if self.image_qa_completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
