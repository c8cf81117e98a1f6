"""Data models for incident reports and proximity/safety queries."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from safe_city.geo import GeoPoint, distance

CATEGORIES = (
    "Theft",
    "Harassment",
    "Violence",
    "Vandalism",
    "Suspicious Activity",
    "Other",
)

# Moderation lifecycle: pending → approved | rejected | flagged
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
FLAGGED = "flagged"
MODERATION_STATUSES = (PENDING, APPROVED, REJECTED, FLAGGED)


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO 8601 string into an aware UTC datetime.

    A trailing ``Z`` is accepted; naive values are taken to be UTC.
    """
    value = raw.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass
class Incident:
    """A community-reported incident. Read-only from the query side."""

    id: str
    title: str
    category: str               # One of CATEGORIES
    description: str
    latitude: float             # WGS84, [-90, 90]
    longitude: float            # WGS84, [-180, 180]
    timestamp: datetime         # When it happened, always UTC
    moderation_status: str = PENDING

    severity: str = "Medium"    # "Low", "Medium", "High"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(self.latitude, self.longitude)

    @property
    def is_approved(self) -> bool:
        return self.moderation_status == APPROVED

    def distance_from(self, point: GeoPoint) -> float:
        """Distance in meters from ``point`` to this incident."""
        return distance(point, self.location)

    def time_ago(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        minutes = int((now - self.timestamp).total_seconds() // 60)
        hours = minutes // 60
        days = hours // 24

        if minutes < 1:
            return "Just now"
        if minutes < 60:
            return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
        if hours < 24:
            return f"{hours} hour{'s' if hours != 1 else ''} ago"
        return f"{days} day{'s' if days != 1 else ''} ago"

    def to_dict(self) -> dict:
        """Public JSON shape served by the HTTP API."""
        return {
            "id": self.id,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
            "moderation": {"status": self.moderation_status},
            "createdAt": self.created_at.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, d: dict) -> Incident:
        """Build an Incident from the API shape or a flat storage row."""
        status = d.get("moderation_status")
        if status is None:
            status = (d.get("moderation") or {}).get("status", PENDING)

        created = d.get("created_at", d.get("createdAt"))
        kwargs = {}
        if created is not None:
            kwargs["created_at"] = created if isinstance(created, datetime) else parse_timestamp(created)

        ts = d["timestamp"]
        return cls(
            id=str(d["id"]),
            title=d.get("title", ""),
            category=d.get("category", "Other"),
            description=d.get("description", ""),
            latitude=float(d["latitude"]),
            longitude=float(d["longitude"]),
            timestamp=ts if isinstance(ts, datetime) else parse_timestamp(ts),
            moderation_status=status,
            severity=d.get("severity") or "Medium",
            **kwargs,
        )

    @classmethod
    def from_json(cls, raw: str) -> Incident:
        return cls.from_dict(json.loads(raw))


@dataclass(frozen=True)
class ProximityQuery:
    """Transient spatial (and optionally temporal) query."""

    center: GeoPoint
    radius_m: float
    since: Optional[datetime] = None


class SafetyTier(str, enum.Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"


@dataclass
class SafetyAssessment:
    """Tier for a location, derived from its recent nearby incidents."""

    tier: SafetyTier
    window_incident_count: int
    matched_incidents: list[Incident] = field(default_factory=list)
