"""Geographic utility functions — pure Python, no external deps."""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 position in decimal degrees."""

    lat: float
    lng: float


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points on Earth in meters.

    Uses the Haversine formula. Inputs are WGS84 decimal degrees and are not
    range-checked; NaN propagates.
    """
    phi1 = lat1 * math.pi / 180
    phi2 = lat2 * math.pi / 180
    dphi = (lat2 - lat1) * math.pi / 180
    dlambda = (lon2 - lon1) * math.pi / 180

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push h a hair outside [0, 1] for antipodal points
    h = min(max(h, 0.0), 1.0) if not math.isnan(h) else h
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_M * c


def distance(a: GeoPoint, b: GeoPoint) -> float:
    """Distance in meters between two GeoPoints."""
    return haversine_m(a.lat, a.lng, b.lat, b.lng)


def validate_coordinates(lat: float, lng: float) -> list[str]:
    """Range-check a lat/lng pair. Returns list of error messages (empty = valid)."""
    errors: list[str] = []

    if not -90 <= lat <= 90:
        errors.append(f"latitude {lat} out of range [-90, 90]")

    if not -180 <= lng <= 180:
        errors.append(f"longitude {lng} out of range [-180, 180]")

    return errors
