"""Query orchestration: repository fetch → moderation gate → filters → tiering.

Every call is stateless and recomputes from a fresh repository read.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from safe_city.errors import InvalidInput, UpstreamUnavailable
from safe_city.geo import GeoPoint, validate_coordinates
from safe_city.models import Incident, ProximityQuery, SafetyAssessment, parse_timestamp
from safe_city.proximity import (
    filter_approved,
    filter_nearby,
    filter_since,
    sort_most_recent_first,
)
from safe_city.repository import IncidentRepository
from safe_city.safety import TIER_COLORS, TIER_DESCRIPTIONS, classify
from safe_city.settings import Settings, load_settings

logger = logging.getLogger(__name__)

MISSING_COORDINATES = "Missing required parameters: lat, lng"
INVALID_COORDINATES = "Invalid coordinates"
INVALID_RADIUS = "Invalid radius"
INVALID_SINCE = "Invalid since timestamp"

STATS_RECENT_WINDOW = timedelta(hours=24)


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_finite_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_point(lat, lng) -> GeoPoint:
    """Validate raw lat/lng parameters (strings or numbers) into a GeoPoint."""
    if _is_missing(lat) or _is_missing(lng):
        raise InvalidInput([MISSING_COORDINATES])

    latitude, longitude = _to_finite_float(lat), _to_finite_float(lng)
    if latitude is None or longitude is None:
        raise InvalidInput([INVALID_COORDINATES, f"non-numeric lat/lng: {lat!r}, {lng!r}"])

    errors = validate_coordinates(latitude, longitude)
    if errors:
        raise InvalidInput([INVALID_COORDINATES, *errors])

    return GeoPoint(latitude, longitude)


def parse_radius(radius, default: float) -> float:
    if _is_missing(radius):
        return default
    value = _to_finite_float(radius)
    if value is None or value < 0:
        raise InvalidInput([INVALID_RADIUS, f"radius must be a non-negative number of meters, got {radius!r}"])
    return value


def parse_since(since, default: datetime | None) -> datetime | None:
    if _is_missing(since):
        return default
    if isinstance(since, datetime):
        return since if since.tzinfo else since.replace(tzinfo=timezone.utc)
    try:
        return parse_timestamp(str(since))
    except ValueError:
        raise InvalidInput([INVALID_SINCE, f"not ISO 8601: {since!r}"]) from None


def build_query(lat, lng, radius=None, since=None, *, default_radius: float) -> ProximityQuery:
    """Validate raw request parameters into a ProximityQuery.

    A missing ``since`` stays None; the caller decides the default window.
    """
    center = parse_point(lat, lng)
    radius_m = parse_radius(radius, default_radius)
    resolved_since = None if _is_missing(since) else parse_since(since, default=None)
    return ProximityQuery(center=center, radius_m=radius_m, since=resolved_since)


@dataclass
class SafetyReport:
    """Safety assessment plus the full radius-filtered list it was drawn from."""

    center: GeoPoint
    radius_m: float
    assessment: SafetyAssessment
    nearby: list[Incident] = field(default_factory=list)

    def to_dict(self) -> dict:
        tier = self.assessment.tier
        return {
            "level": tier.value,
            "description": TIER_DESCRIPTIONS[tier],
            "color": TIER_COLORS[tier],
            "incidentCount": self.assessment.window_incident_count,
            "recentIncidents": [i.to_dict() for i in self.assessment.matched_incidents],
            "incidents": [i.to_dict() for i in self.nearby],
            "radius": self.radius_m,
            "location": {"lat": self.center.lat, "lng": self.center.lng},
        }


class IncidentQueryService:
    """Nearby / recent / safety queries over an IncidentRepository."""

    def __init__(self, repository: IncidentRepository, settings: Settings | None = None):
        self.repository = repository
        self.settings = settings or load_settings()

    def _fetch(self, what: str, since: datetime | None = None, limit: int | None = None) -> list[Incident]:
        try:
            rows = self.repository.find_approved(since=since, limit=limit)
        except Exception as exc:
            raise UpstreamUnavailable(f"Failed to fetch {what} incidents") from exc
        return filter_approved(rows)

    # ── Core queries ─────────────────────────────────────────────────────

    def nearby(self, center: GeoPoint, radius_m: float | None = None) -> list[Incident]:
        """Approved incidents within ``radius_m`` of ``center``, most recent first."""
        if radius_m is None:
            radius_m = self.settings.default_radius_m
        query = ProximityQuery(center=center, radius_m=radius_m)

        candidates = self._fetch("nearby")
        matches = filter_nearby(candidates, query)
        logger.debug(
            "nearby (%.5f, %.5f) r=%.0fm: %d of %d approved",
            center.lat, center.lng, radius_m, len(matches), len(candidates),
        )
        return sort_most_recent_first(matches)

    def recent(
        self,
        center: GeoPoint,
        radius_m: float | None = None,
        since: datetime | None = None,
        now: datetime | None = None,
    ) -> list[Incident]:
        """Approved incidents within radius with ``timestamp >= since``.

        ``since`` defaults to ``recent_lookback_minutes`` before ``now``.
        """
        if radius_m is None:
            radius_m = self.settings.default_radius_m
        if since is None:
            now = now or datetime.now(timezone.utc)
            since = now - timedelta(minutes=self.settings.recent_lookback_minutes)
        query = ProximityQuery(center=center, radius_m=radius_m, since=since)

        candidates = filter_since(self._fetch("recent", since=since), query.since)
        return sort_most_recent_first(filter_nearby(candidates, query))

    def safety(self, point: GeoPoint, now: datetime | None = None) -> SafetyReport:
        """Tier ``point`` from approved incidents within the safety radius."""
        now = now or datetime.now(timezone.utc)
        radius_m = self.settings.safety_radius_m

        nearby = self.nearby(point, radius_m)
        assessment = classify(
            nearby,
            as_of=now,
            window=timedelta(days=self.settings.safety_window_days),
        )
        logger.info(
            "safety (%.5f, %.5f): %s (%d recent, %d nearby)",
            point.lat, point.lng, assessment.tier.value,
            assessment.window_incident_count, len(nearby),
        )
        return SafetyReport(center=point, radius_m=radius_m, assessment=assessment, nearby=nearby)

    # ── Public feed ──────────────────────────────────────────────────────

    def feed(self, limit: int | None = None) -> list[Incident]:
        """Most recent approved incidents, capped at ``feed_limit``."""
        limit = limit or self.settings.feed_limit
        return sort_most_recent_first(self._fetch("feed", limit=limit))[:limit]

    def get(self, incident_id: str) -> Incident | None:
        """An approved incident by id, or None."""
        try:
            incident = self.repository.get(incident_id)
        except Exception as exc:
            raise UpstreamUnavailable("Failed to fetch incident") from exc
        if incident is None or not incident.is_approved:
            return None
        return incident

    def stats(self, now: datetime | None = None) -> dict:
        """Totals, last-24h count and per-category counts over approved incidents."""
        now = now or datetime.now(timezone.utc)
        incidents = self._fetch("statistics")
        cutoff = now - STATS_RECENT_WINDOW

        counts = Counter(i.category for i in incidents)
        category_stats = [
            {"category": category, "count": count}
            for category, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        ]
        return {
            "totalIncidents": len(incidents),
            "recentIncidents": sum(1 for i in incidents if i.timestamp >= cutoff),
            "categoryStats": category_stats,
        }
