from __future__ import annotations

import uuid

from yellowjersey.integrations.payments.base import (
    CheckoutSessionRequest,
    CheckoutSessionResult,
    PaymentsProvider,
    TransferResult,
)


class MockPaymentsProvider(PaymentsProvider):
    name = "mock"

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSessionResult:
        session_id = f"cs_mock_{uuid.uuid4().hex[:24]}"
        total = sum(int(item.unit_amount_cents) * int(item.quantity) for item in req.line_items)
        return CheckoutSessionResult(
            session_id=session_id,
            url=f"https://example.com/mock/checkout?session_id={session_id}",
            provider=self.name,
            raw={
                "amount_total": total,
                "currency": req.currency,
                "metadata": dict(req.metadata or {}),
            },
        )

    def create_transfer(self, *, amount_cents: int, destination: str, transfer_group: str, metadata: dict | None = None) -> TransferResult:
        return TransferResult(
            transfer_id=f"tr_mock_{uuid.uuid4().hex[:24]}",
            amount_cents=int(amount_cents),
            destination=destination,
            raw={"transfer_group": transfer_group, "metadata": dict(metadata or {})},
        )
