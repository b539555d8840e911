from __future__ import annotations

from sqlalchemy import func

from yellowjersey.extensions import db
from yellowjersey.models import StoreCategory, StoreService, User
from yellowjersey.models.store import CATEGORY_SOURCES
from yellowjersey.services.errors import ServiceError


def require_store(user: User | None) -> User:
    if user is None:
        raise ServiceError(401, "Unauthorized")
    if not user.is_verified_store:
        raise ServiceError(403, "Only verified bicycle stores can manage their store page")
    return user


def _next_display_order(model, user_id: int) -> int:
    current = db.session.query(func.max(model.display_order)).filter(model.user_id == int(user_id)).scalar()
    return int(current) + 1 if current is not None else 0


def _product_ids(raw) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ServiceError(400, "product_ids must be a list")
    try:
        return [int(v) for v in raw]
    except (TypeError, ValueError):
        raise ServiceError(400, "product_ids must contain product ids")


def _owned(model, user: User, row_id) -> object:
    try:
        row = db.session.get(model, int(row_id))
    except (TypeError, ValueError):
        raise ServiceError(400, "id is required")
    if row is None or int(row.user_id) != int(user.id):
        raise ServiceError(404, "Not found")
    return row


def list_categories(user: User) -> list[dict]:
    rows = (
        StoreCategory.query.filter_by(user_id=int(user.id))
        .order_by(StoreCategory.display_order.asc(), StoreCategory.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]


def create_category(user: User, data: dict) -> StoreCategory:
    name = (data.get("name") or "").strip()
    source = (data.get("source") or "").strip().lower()
    if not name or not source:
        raise ServiceError(400, "name and source are required")
    if source not in CATEGORY_SOURCES:
        raise ServiceError(400, "source must be lightspeed or custom")
    display_order = data.get("display_order")
    row = StoreCategory(
        user_id=int(user.id),
        name=name[:120],
        source=source,
        lightspeed_category_id=(str(data.get("lightspeed_category_id")) if data.get("lightspeed_category_id") else None),
        display_order=int(display_order) if display_order is not None else _next_display_order(StoreCategory, user.id),
        is_active=True,
    )
    row.product_ids = _product_ids(data.get("product_ids"))
    db.session.add(row)
    db.session.commit()
    return row


def update_category(user: User, data: dict) -> StoreCategory:
    row = _owned(StoreCategory, user, data.get("id"))
    changed = False
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ServiceError(400, "name cannot be empty")
        row.name = name[:120]
        changed = True
    if "product_ids" in data:
        row.product_ids = _product_ids(data.get("product_ids"))
        changed = True
    if "display_order" in data:
        row.display_order = int(data.get("display_order") or 0)
        changed = True
    if "is_active" in data:
        row.is_active = bool(data.get("is_active"))
        changed = True
    if not changed:
        raise ServiceError(400, "No fields to update")
    db.session.commit()
    return row


def delete_category(user: User, category_id) -> None:
    row = _owned(StoreCategory, user, category_id)
    db.session.delete(row)
    db.session.commit()


def list_services(user: User) -> list[dict]:
    rows = (
        StoreService.query.filter_by(user_id=int(user.id))
        .order_by(StoreService.display_order.asc(), StoreService.id.asc())
        .all()
    )
    return [r.to_dict() for r in rows]


def create_service(user: User, data: dict) -> StoreService:
    name = (data.get("name") or "").strip()
    if not name:
        raise ServiceError(400, "name is required")
    display_order = data.get("display_order")
    row = StoreService(
        user_id=int(user.id),
        name=name[:120],
        description=(data.get("description") or "").strip() or None,
        display_order=int(display_order) if display_order is not None else _next_display_order(StoreService, user.id),
        is_active=True,
    )
    db.session.add(row)
    db.session.commit()
    return row


def update_service(user: User, data: dict) -> StoreService:
    row = _owned(StoreService, user, data.get("id"))
    changed = False
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ServiceError(400, "name cannot be empty")
        row.name = name[:120]
        changed = True
    if "description" in data:
        row.description = (data.get("description") or "").strip() or None
        changed = True
    if "display_order" in data:
        row.display_order = int(data.get("display_order") or 0)
        changed = True
    if "is_active" in data:
        row.is_active = bool(data.get("is_active"))
        changed = True
    if not changed:
        raise ServiceError(400, "No fields to update")
    db.session.commit()
    return row


def delete_service(user: User, service_id) -> None:
    row = _owned(StoreService, user, service_id)
    db.session.delete(row)
    db.session.commit()
