from __future__ import annotations


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


def provider_failure(error: RuntimeError) -> tuple[int, str]:
    """HTTP status and client-safe message for an integration failure."""
    if isinstance(error, IntegrationDisabledError):
        return 503, "Payments are currently unavailable"
    if isinstance(error, IntegrationMisconfiguredError):
        return 500, "Payment provider is not configured"
    return 502, "Payment provider request failed"
