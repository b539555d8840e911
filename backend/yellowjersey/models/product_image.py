from datetime import datetime
import sqlalchemy as sa

from yellowjersey.extensions import db


APPROVAL_STATUSES = ("pending", "approved", "rejected")


class ProductImage(db.Model):
    __tablename__ = "product_images"

    id = db.Column(db.Integer, primary_key=True)

    # Exactly one owner is set: a listing or a canonical catalogue product.
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    canonical_product_id = db.Column(db.Integer, db.ForeignKey("canonical_products.id"), nullable=True, index=True)

    storage_path = db.Column(db.String(512), nullable=True)
    external_url = db.Column(db.String(1024), nullable=True)

    # Delivery variants
    cloudinary_url = db.Column(db.String(1024), nullable=True)
    card_url = db.Column(db.String(1024), nullable=True)
    thumbnail_url = db.Column(db.String(1024), nullable=True)
    mobile_card_url = db.Column(db.String(1024), nullable=True)
    gallery_url = db.Column(db.String(1024), nullable=True)
    detail_url = db.Column(db.String(1024), nullable=True)

    is_downloaded = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    is_primary = db.Column(db.Boolean, nullable=False, default=False, server_default=sa.text("false"))
    sort_order = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    approval_status = db.Column(db.String(16), nullable=False, default="pending", server_default="pending", index=True)

    width = db.Column(db.Integer, nullable=True)
    height = db.Column(db.Integer, nullable=True)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(64), nullable=True)
    # 64-bit perceptual hash (hex) computed when the file is stored.
    phash = db.Column(db.String(16), nullable=True)
    # upload | discovery | lightspeed
    source = db.Column(db.String(32), nullable=False, default="upload", server_default="upload")

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    approved_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self, *, url: str | None = None) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "canonical_product_id": self.canonical_product_id,
            "url": url,
            "storage_path": self.storage_path,
            "external_url": self.external_url,
            "cloudinary_url": self.cloudinary_url,
            "card_url": self.card_url,
            "thumbnail_url": self.thumbnail_url,
            "detail_url": self.detail_url,
            "is_downloaded": bool(self.is_downloaded),
            "is_primary": bool(self.is_primary),
            "sort_order": int(self.sort_order or 0),
            "approval_status": self.approval_status or "pending",
            "width": self.width,
            "height": self.height,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "phash": self.phash,
            "source": self.source or "upload",
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class ImageDiscoveryJob(db.Model):
    __tablename__ = "image_discovery_jobs"

    id = db.Column(db.Integer, primary_key=True)
    canonical_product_id = db.Column(db.Integer, db.ForeignKey("canonical_products.id"), nullable=False, index=True)
    # queued | processing | completed | failed
    status = db.Column(db.String(16), nullable=False, default="queued", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    images_found = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.Text, nullable=True)
    requested_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    started_at = db.Column(db.DateTime, nullable=True)
    finished_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": int(self.id),
            "canonical_product_id": int(self.canonical_product_id),
            "status": self.status or "queued",
            "attempts": int(self.attempts or 0),
            "images_found": int(self.images_found or 0),
            "error": self.error or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
