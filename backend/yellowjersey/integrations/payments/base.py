from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class LineItem:
    name: str
    unit_amount_cents: int
    quantity: int = 1
    description: str = ""
    images: list[str] = field(default_factory=list)


@dataclass
class CheckoutSessionRequest:
    line_items: list[LineItem]
    success_url: str
    cancel_url: str
    metadata: dict
    customer_email: str | None = None
    collect_shipping: bool = False
    shipping_countries: tuple[str, ...] = ("AU", "NZ")
    currency: str = "aud"
    expires_at: int | None = None


@dataclass
class CheckoutSessionResult:
    session_id: str
    url: str
    provider: str
    raw: dict | None = None


@dataclass
class TransferResult:
    transfer_id: str
    amount_cents: int
    destination: str
    raw: dict | None = None


class PaymentsProvider:
    name = "unknown"

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSessionResult:
        raise NotImplementedError

    def create_transfer(self, *, amount_cents: int, destination: str, transfer_group: str, metadata: dict | None = None) -> TransferResult:
        raise NotImplementedError
