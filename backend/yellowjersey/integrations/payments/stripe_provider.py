from __future__ import annotations

import requests

from yellowjersey.integrations.payments.base import (
    CheckoutSessionRequest,
    CheckoutSessionResult,
    PaymentsProvider,
    TransferResult,
)

STRIPE_API_BASE = "https://api.stripe.com/v1"


def _flatten(prefix: str, value, out: list[tuple[str, str]]) -> None:
    # Stripe expects bracketed form keys: line_items[0][price_data][currency]=aud
    if isinstance(value, dict):
        for k, v in value.items():
            _flatten(f"{prefix}[{k}]" if prefix else str(k), v, out)
    elif isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            _flatten(f"{prefix}[{i}]", v, out)
    elif isinstance(value, bool):
        out.append((prefix, "true" if value else "false"))
    elif value is not None:
        out.append((prefix, str(value)))


def encode_form(params: dict) -> list[tuple[str, str]]:
    out: list[tuple[str, str]] = []
    _flatten("", params, out)
    return out


class StripePaymentsProvider(PaymentsProvider):
    name = "stripe"

    def __init__(self, secret_key: str):
        self.secret_key = secret_key

    def _session_params(self, req: CheckoutSessionRequest) -> dict:
        line_items = []
        for item in req.line_items:
            product_data = {"name": item.name}
            if item.description:
                product_data["description"] = item.description
            if item.images:
                product_data["images"] = list(item.images)
            line_items.append(
                {
                    "price_data": {
                        "currency": req.currency,
                        "product_data": product_data,
                        "unit_amount": int(item.unit_amount_cents),
                    },
                    "quantity": int(item.quantity),
                }
            )
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": req.success_url,
            "cancel_url": req.cancel_url,
            "metadata": dict(req.metadata or {}),
            "payment_intent_data": {"metadata": dict(req.metadata or {})},
            "phone_number_collection": {"enabled": True},
        }
        if req.customer_email:
            params["customer_email"] = req.customer_email
        if req.collect_shipping:
            params["shipping_address_collection"] = {"allowed_countries": list(req.shipping_countries)}
        if req.expires_at:
            params["expires_at"] = int(req.expires_at)
        return params

    def create_checkout_session(self, req: CheckoutSessionRequest) -> CheckoutSessionResult:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        r = requests.post(
            f"{STRIPE_API_BASE}/checkout/sessions",
            headers=headers,
            data=encode_form(self._session_params(req)),
            timeout=25,
        )
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = ((j.get("error") or {}).get("message") or f"HTTP {r.status_code}").strip()
            raise RuntimeError(f"STRIPE_CHECKOUT_FAILED:{msg}")
        return CheckoutSessionResult(
            session_id=(j.get("id") or "").strip(),
            url=(j.get("url") or "").strip(),
            provider=self.name,
            raw=j if isinstance(j, dict) else {"payload": j},
        )

    def create_transfer(self, *, amount_cents: int, destination: str, transfer_group: str, metadata: dict | None = None) -> TransferResult:
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        params = {
            "amount": int(amount_cents),
            "currency": "aud",
            "destination": destination,
            "transfer_group": transfer_group,
            "metadata": dict(metadata or {}),
        }
        r = requests.post(f"{STRIPE_API_BASE}/transfers", headers=headers, data=encode_form(params), timeout=25)
        j = r.json() if r.content else {}
        if r.status_code < 200 or r.status_code >= 300:
            msg = ((j.get("error") or {}).get("message") or f"HTTP {r.status_code}").strip()
            raise RuntimeError(f"STRIPE_TRANSFER_FAILED:{msg}")
        return TransferResult(
            transfer_id=(j.get("id") or "").strip(),
            amount_cents=int(j.get("amount") or amount_cents),
            destination=destination,
            raw=j if isinstance(j, dict) else {"payload": j},
        )
