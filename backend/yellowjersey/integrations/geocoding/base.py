from __future__ import annotations

from dataclasses import dataclass


@dataclass
class GeocodeResult:
    lat: float
    lng: float
    formatted_address: str = ""


class Geocoder:
    name = "unknown"

    def geocode(self, address: str) -> GeocodeResult | None:
        """Return None when the address cannot be resolved."""
        raise NotImplementedError
