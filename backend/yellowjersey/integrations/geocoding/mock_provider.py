from __future__ import annotations

from yellowjersey.integrations.geocoding.base import Geocoder, GeocodeResult

# Suburb centroids for local development without a maps key.
_SUBURBS = {
    "ashburton": (-37.8673, 145.0824),
    "camberwell": (-37.8421, 145.0694),
    "glen iris": (-37.8560, 145.0640),
    "malvern": (-37.8622, 145.0290),
    "box hill": (-37.8189, 145.1250),
    "richmond": (-37.8230, 144.9980),
    "melbourne": (-37.8136, 144.9631),
    "frankston": (-38.1440, 145.1230),
    "geelong": (-38.1499, 144.3617),
}


class MockGeocoder(Geocoder):
    name = "mock"

    def geocode(self, address: str) -> GeocodeResult | None:
        low = (address or "").lower()
        for suburb, (lat, lng) in _SUBURBS.items():
            if suburb in low:
                return GeocodeResult(lat=lat, lng=lng, formatted_address=address)
        return None
