from __future__ import annotations

import os

from yellowjersey.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from yellowjersey.integrations.payments.base import PaymentsProvider
from yellowjersey.integrations.payments.mock_provider import MockPaymentsProvider
from yellowjersey.integrations.payments.stripe_provider import StripePaymentsProvider


def payments_provider_name() -> str:
    return (os.getenv("PAYMENTS_PROVIDER") or "mock").strip().lower()


def build_payments_provider() -> PaymentsProvider:
    provider = payments_provider_name()

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:payments")

    if provider == "mock":
        return MockPaymentsProvider()

    if provider != "stripe":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:payments_provider={provider}")

    secret_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    if not secret_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing STRIPE_SECRET_KEY")

    return StripePaymentsProvider(secret_key=secret_key)


def payment_health() -> dict:
    provider = payments_provider_name()
    secret_key = (os.getenv("STRIPE_SECRET_KEY") or "").strip()
    webhook_secret = (os.getenv("STRIPE_WEBHOOK_SECRET") or "").strip()
    missing = []
    if provider == "stripe":
        if not secret_key:
            missing.append("STRIPE_SECRET_KEY")
        if not webhook_secret:
            missing.append("STRIPE_WEBHOOK_SECRET")
    if provider == "disabled":
        status = "disabled"
    elif missing:
        status = "misconfigured"
    else:
        status = "configured"
    return {
        "status": status,
        "provider": provider,
        "missing": missing,
        "hasSecretKey": bool(secret_key),
        "secretKeyMode": "live" if secret_key.startswith("sk_live_") else ("test" if secret_key.startswith("sk_test_") else None),
        "hasWebhookSecret": bool(webhook_secret),
        "webhookSecretFormatOk": webhook_secret.startswith("whsec_") if webhook_secret else None,
        "hasAppUrl": bool((os.getenv("APP_URL") or "").strip()),
    }
