"""Shared fixtures: an in-memory incident store and incident factories."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from safe_city.geo import EARTH_RADIUS_M, GeoPoint
from safe_city.models import APPROVED, Incident
from safe_city.settings import Settings

NYC = GeoPoint(40.7128, -74.0060)
NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def offset_north(point: GeoPoint, meters: float) -> GeoPoint:
    """Point ``meters`` due north of ``point`` along the meridian."""
    return GeoPoint(point.lat + math.degrees(meters / EARTH_RADIUS_M), point.lng)


def make_incident(
    uid: str = "inc-1",
    at: GeoPoint = NYC,
    timestamp: datetime | None = None,
    status: str = APPROVED,
    category: str = "Theft",
    title: str = "Phone snatched",
) -> Incident:
    return Incident(
        id=uid,
        title=title,
        category=category,
        description="Reported by a passer-by",
        latitude=at.lat,
        longitude=at.lng,
        timestamp=timestamp or NOW,
        moderation_status=status,
        created_at=timestamp or NOW,
    )


class FakeIncidentRepository:
    """In-memory IncidentRepository.

    With ``raw=True`` it ignores status, time and ordering entirely, like a
    store that cannot push any filtering down.
    """

    def __init__(self, incidents=(), raw: bool = False, fail: bool = False):
        self.incidents = list(incidents)
        self.raw = raw
        self.fail = fail
        self.calls: list[dict] = []

    def find_approved(self, since=None, limit=None):
        self.calls.append({"since": since, "limit": limit})
        if self.fail:
            raise ConnectionError("database is down")
        if self.raw:
            return list(self.incidents)

        rows = [i for i in self.incidents if i.moderation_status == APPROVED]
        if since is not None:
            rows = [i for i in rows if i.timestamp >= since]
        rows.sort(key=lambda i: i.timestamp, reverse=True)
        return rows[:limit] if limit is not None else rows

    def get(self, incident_id):
        if self.fail:
            raise ConnectionError("database is down")
        return next((i for i in self.incidents if i.id == incident_id), None)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="postgresql://unused",
        default_radius_m=1000.0,
        safety_radius_m=1000.0,
        safety_window_days=7,
        recent_lookback_minutes=5,
        poll_interval_seconds=30,
        feed_limit=100,
        api_base_url="http://safe-city.test",
        max_retries=2,
        retry_backoff_base=2.0,
        timeout_seconds=5,
    )


@pytest.fixture
def ago():
    """``ago(days=2)`` → that long before NOW."""
    def _ago(**kwargs) -> datetime:
        return NOW - timedelta(**kwargs)
    return _ago
