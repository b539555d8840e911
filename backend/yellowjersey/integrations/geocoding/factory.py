from __future__ import annotations

import os

from yellowjersey.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError
from yellowjersey.integrations.geocoding.base import Geocoder
from yellowjersey.integrations.geocoding.google_provider import GoogleGeocoder
from yellowjersey.integrations.geocoding.mock_provider import MockGeocoder


def build_geocoder() -> Geocoder:
    provider = (os.getenv("GEOCODER_PROVIDER") or "").strip().lower()
    api_key = (os.getenv("GOOGLE_MAPS_API_KEY") or "").strip()
    if not provider:
        provider = "google" if api_key else "mock"

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:geocoder")
    if provider == "mock":
        return MockGeocoder()
    if provider != "google":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:geocoder_provider={provider}")
    if not api_key:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing GOOGLE_MAPS_API_KEY")
    return GoogleGeocoder(api_key=api_key)
