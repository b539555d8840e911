from __future__ import annotations

import math

import requests
from flask import current_app

from yellowjersey.integrations.geocoding.factory import build_geocoder
from yellowjersey.services.errors import ServiceError

STORE_NAME = "Ashburton Cycles"
STORE_LAT = -37.8673
STORE_LNG = 145.0824
MAX_DELIVERY_RADIUS_KM = 10.0
EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_address(address: dict) -> str:
    parts = [
        address.get("line1"),
        address.get("line2"),
        address.get("city"),
        address.get("state"),
        address.get("postcode") or address.get("postal_code"),
        address.get("country") or "Australia",
    ]
    return ", ".join(str(p).strip() for p in parts if p and str(p).strip())


def _fallback(formatted: str) -> dict:
    return {
        "eligible": True,
        "distance": None,
        "maxRadius": MAX_DELIVERY_RADIUS_KM,
        "storeName": STORE_NAME,
        "fallback": True,
        "message": "We couldn't verify your distance. The store will confirm delivery before dispatch.",
        "deliveryAddress": formatted,
    }


def check_eligibility(address) -> dict:
    if not isinstance(address, dict):
        raise ServiceError(400, "Address is required")
    if not (address.get("line1") or "").strip() or not (address.get("city") or "").strip():
        raise ServiceError(400, "Address line 1 and city are required")
    formatted = format_address(address)

    try:
        result = build_geocoder().geocode(formatted)
    except (RuntimeError, requests.RequestException, ValueError) as e:
        current_app.logger.warning("delivery_geocode_failed err=%s", e)
        return _fallback(formatted)
    if result is None:
        current_app.logger.info("delivery_geocode_no_result address=%s", formatted)
        return _fallback(formatted)

    distance = round(haversine_km(STORE_LAT, STORE_LNG, result.lat, result.lng), 1)
    eligible = distance <= MAX_DELIVERY_RADIUS_KM
    if eligible:
        message = f"Great news! You're {distance}km from {STORE_NAME}. Uber Express delivery is available."
    else:
        message = (
            f"Sorry, you're {distance}km from {STORE_NAME}. "
            f"Uber Express delivery is only available within {MAX_DELIVERY_RADIUS_KM:g}km."
        )
    return {
        "eligible": eligible,
        "distance": distance,
        "maxRadius": MAX_DELIVERY_RADIUS_KM,
        "storeName": STORE_NAME,
        "message": message,
        "deliveryAddress": result.formatted_address or formatted,
    }
