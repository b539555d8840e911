from __future__ import annotations

import requests

from yellowjersey.integrations.geocoding.base import Geocoder, GeocodeResult

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


class GoogleGeocoder(Geocoder):
    name = "google"

    def __init__(self, api_key: str, region: str = "au"):
        self.api_key = api_key
        self.region = region

    def geocode(self, address: str) -> GeocodeResult | None:
        r = requests.get(
            GEOCODE_URL,
            params={"address": address, "key": self.api_key, "region": self.region},
            timeout=10,
        )
        j = r.json() if r.content else {}
        status = (j.get("status") or "").strip()
        if r.status_code != 200 or status not in ("OK", "ZERO_RESULTS"):
            raise RuntimeError(f"GEOCODE_FAILED:{status or r.status_code}")
        results = j.get("results") or []
        if not results:
            return None
        first = results[0]
        loc = (first.get("geometry") or {}).get("location") or {}
        return GeocodeResult(
            lat=float(loc.get("lat")),
            lng=float(loc.get("lng")),
            formatted_address=(first.get("formatted_address") or "").strip(),
        )
