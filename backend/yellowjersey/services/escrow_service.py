from __future__ import annotations

from datetime import datetime

from flask import current_app

from yellowjersey.extensions import db
from yellowjersey.integrations.payments.factory import build_payments_provider
from yellowjersey.models import Purchase, User
from yellowjersey.services.checkout_service import to_cents


class FundsStatus:
    HELD = "held"
    DISPUTED = "disputed"
    RELEASED = "released"
    AUTO_RELEASED = "auto_released"
    REFUNDED = "refunded"

    ALLOWED = {
        HELD: {HELD, DISPUTED, RELEASED, AUTO_RELEASED, REFUNDED},
        DISPUTED: {DISPUTED, RELEASED, REFUNDED},
        RELEASED: {RELEASED},
        AUTO_RELEASED: {AUTO_RELEASED},
        REFUNDED: {REFUNDED},
    }
    PAYABLE = {RELEASED, AUTO_RELEASED}


def can_transition(current: str | None, target: str) -> bool:
    return target in FundsStatus.ALLOWED.get(current or FundsStatus.HELD, set())


def trigger_seller_payout(purchase: Purchase) -> str:
    """Transfer the seller's share for released funds. Returns the resulting payout_status."""
    if purchase.stripe_transfer_id:
        return purchase.payout_status or "completed"
    if purchase.funds_status not in FundsStatus.PAYABLE:
        raise ValueError(f"payout_not_allowed funds_status={purchase.funds_status}")

    seller = db.session.get(User, int(purchase.seller_id))
    destination = (getattr(seller, "payout_account_id", None) or "").strip() if seller else ""
    if not destination:
        purchase.payout_status = "failed"
        purchase.payout_error = "Seller has no payout account"
        current_app.logger.warning("payout_skipped_no_account purchase_id=%s seller_id=%s", purchase.id, purchase.seller_id)
        return purchase.payout_status

    transfer = build_payments_provider().create_transfer(
        amount_cents=to_cents(purchase.seller_payout_amount or 0.0),
        destination=destination,
        transfer_group=purchase.order_number,
        metadata={"purchase_id": str(purchase.id), "order_number": purchase.order_number},
    )
    purchase.stripe_transfer_id = transfer.transfer_id
    purchase.payout_triggered_at = datetime.utcnow()
    purchase.payout_status = "completed"
    purchase.payout_error = None
    current_app.logger.info("payout_created purchase_id=%s transfer_id=%s", purchase.id, transfer.transfer_id)
    return purchase.payout_status


def release_due_funds(now: datetime | None = None) -> dict:
    now = now or datetime.utcnow()
    due = (
        Purchase.query.filter(Purchase.funds_status == FundsStatus.HELD, Purchase.funds_release_at <= now)
        .order_by(Purchase.funds_release_at.asc())
        .all()
    )
    results = {"released": 0, "failed": 0, "errors": []}
    for purchase in due:
        order_number = purchase.order_number
        try:
            # Conditional update so a concurrent dispute or release wins.
            claimed = (
                Purchase.query.filter(Purchase.id == purchase.id, Purchase.funds_status == FundsStatus.HELD)
                .update(
                    {Purchase.funds_status: FundsStatus.AUTO_RELEASED, Purchase.funds_released_at: now},
                    synchronize_session="fetch",
                )
            )
            if not claimed:
                db.session.rollback()
                continue
            trigger_seller_payout(purchase)
            db.session.commit()
            results["released"] += 1
        except Exception as e:
            db.session.rollback()
            results["failed"] += 1
            results["errors"].append(f"{order_number}: {e}")
            current_app.logger.exception("funds_release_failed order_number=%s", order_number)
    current_app.logger.info("funds_release_complete released=%s failed=%s", results["released"], results["failed"])
    return results
