"""Tests for the query service and request parameter validation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, NYC, FakeIncidentRepository, make_incident, offset_north
from safe_city.errors import InvalidInput, UpstreamUnavailable
from safe_city.geo import GeoPoint, distance
from safe_city.models import SafetyTier
from safe_city.queries import (
    INVALID_COORDINATES,
    INVALID_RADIUS,
    INVALID_SINCE,
    MISSING_COORDINATES,
    IncidentQueryService,
    build_query,
    parse_point,
)


def _service(settings, incidents=(), **repo_kwargs) -> IncidentQueryService:
    return IncidentQueryService(FakeIncidentRepository(incidents, **repo_kwargs), settings)


# ── Parameter validation ─────────────────────────────────────────────────


class TestBuildQuery:
    def test_parses_strings(self):
        query = build_query("40.7128", "-74.0060", "250", default_radius=1000)
        assert query.center == NYC
        assert query.radius_m == 250.0
        assert query.since is None

    def test_default_radius(self):
        assert build_query("1", "2", None, default_radius=1000).radius_m == 1000
        assert build_query("1", "2", "", default_radius=1000).radius_m == 1000

    def test_zero_coordinates_are_not_missing(self):
        assert build_query("0", "0", default_radius=1000).center == GeoPoint(0.0, 0.0)
        assert parse_point(0.0, 0.0) == GeoPoint(0.0, 0.0)

    @pytest.mark.parametrize("lat, lng", [(None, "1"), ("1", None), ("", "1"), ("1", "  ")])
    def test_missing(self, lat, lng):
        with pytest.raises(InvalidInput) as exc_info:
            build_query(lat, lng, default_radius=1000)
        assert exc_info.value.message == MISSING_COORDINATES

    @pytest.mark.parametrize("lat, lng", [("91", "0"), ("0", "180.5"), ("abc", "0"), ("nan", "0"), ("inf", "0")])
    def test_invalid_coordinates(self, lat, lng):
        with pytest.raises(InvalidInput) as exc_info:
            build_query(lat, lng, default_radius=1000)
        assert exc_info.value.message == INVALID_COORDINATES

    @pytest.mark.parametrize("radius", ["-1", "wide", "nan"])
    def test_invalid_radius(self, radius):
        with pytest.raises(InvalidInput) as exc_info:
            build_query("1", "2", radius, default_radius=1000)
        assert exc_info.value.message == INVALID_RADIUS

    def test_since_parsing(self):
        query = build_query("1", "2", since="2024-06-01T11:55:00Z", default_radius=1000)
        assert query.since == datetime(2024, 6, 1, 11, 55, tzinfo=timezone.utc)

        naive = build_query("1", "2", since="2024-06-01T11:55:00", default_radius=1000)
        assert naive.since == query.since

    def test_invalid_since(self):
        with pytest.raises(InvalidInput) as exc_info:
            build_query("1", "2", since="yesterday", default_radius=1000)
        assert exc_info.value.message == INVALID_SINCE


# ── Nearby ───────────────────────────────────────────────────────────────


class TestNearby:
    def test_scenario_same_point(self, settings):
        incident = make_incident(timestamp=NOW)
        service = _service(settings, [incident])
        assert service.nearby(NYC, 1000) == [incident]

    def test_scenario_radius_boundary(self, settings):
        edge = make_incident("edge", at=offset_north(NYC, 1200))
        exact = distance(NYC, edge.location)
        assert exact == pytest.approx(1200, abs=1e-6)

        service = _service(settings, [edge])
        assert service.nearby(NYC, 1000) == []
        assert service.nearby(NYC, exact) == [edge]

    def test_default_radius(self, settings):
        inside = make_incident("inside", at=offset_north(NYC, 999))
        outside = make_incident("outside", at=offset_north(NYC, 1001))
        assert _service(settings, [inside, outside]).nearby(NYC) == [inside]

    def test_most_recent_first_even_if_store_does_not_sort(self, settings, ago):
        incidents = [
            make_incident("middle", timestamp=ago(hours=2)),
            make_incident("oldest", timestamp=ago(days=3)),
            make_incident("newest", timestamp=ago(minutes=1)),
        ]
        service = _service(settings, incidents, raw=True)
        assert [i.id for i in service.nearby(NYC)] == ["newest", "middle", "oldest"]

    @pytest.mark.parametrize("raw", [False, True])
    def test_moderation_gate(self, settings, raw):
        incidents = [
            make_incident(status, status=status)
            for status in ("pending", "approved", "rejected", "flagged")
        ]
        service = _service(settings, incidents, raw=raw)
        assert [i.id for i in service.nearby(NYC)] == ["approved"]
        assert [i.id for i in service.recent(NYC, since=NOW - timedelta(days=1))] == ["approved"]
        assert service.safety(NYC, now=NOW).assessment.window_incident_count == 1

    def test_upstream_failure(self, settings):
        service = _service(settings, fail=True)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            service.nearby(NYC)
        assert str(exc_info.value) == "Failed to fetch nearby incidents"
        assert isinstance(exc_info.value.__cause__, ConnectionError)


# ── Recent ───────────────────────────────────────────────────────────────


class TestRecent:
    def test_default_since_is_five_minutes(self, settings, ago):
        fresh = make_incident("fresh", timestamp=ago(minutes=4))
        edge = make_incident("edge", timestamp=ago(minutes=5))
        stale = make_incident("stale", timestamp=ago(minutes=6))
        service = _service(settings, [stale, edge, fresh])

        result = service.recent(NYC, now=NOW)
        assert [i.id for i in result] == ["fresh", "edge"]
        assert service.repository.calls[-1]["since"] == ago(minutes=5)

    def test_explicit_since_and_radius(self, settings, ago):
        near = make_incident("near", at=offset_north(NYC, 400), timestamp=ago(hours=1))
        far = make_incident("far", at=offset_north(NYC, 900), timestamp=ago(hours=1))
        service = _service(settings, [near, far])
        assert service.recent(NYC, radius_m=500, since=ago(hours=2)) == [near]

    def test_time_filter_applied_when_store_ignores_since(self, settings, ago):
        old = make_incident("old", timestamp=ago(days=2))
        service = _service(settings, [old], raw=True)
        assert service.recent(NYC, since=ago(hours=1)) == []

    def test_upstream_failure(self, settings):
        with pytest.raises(UpstreamUnavailable):
            _service(settings, fail=True).recent(NYC)


# ── Safety ───────────────────────────────────────────────────────────────


class TestSafety:
    def test_single_incident_is_warning(self, settings):
        service = _service(settings, [make_incident(timestamp=NOW)])
        report = service.safety(NYC, now=NOW)
        assert report.assessment.tier is SafetyTier.WARNING
        assert report.assessment.window_incident_count == 1

    def test_three_recent_within_500m_is_danger(self, settings, ago):
        incidents = [
            make_incident("a", at=offset_north(NYC, 100), timestamp=ago(days=2)),
            make_incident("b", at=offset_north(NYC, 300), timestamp=ago(days=1)),
            make_incident("c", at=offset_north(NYC, 480), timestamp=ago(hours=3)),
        ]
        report = _service(settings, incidents).safety(NYC, now=NOW)
        assert report.assessment.tier is SafetyTier.DANGER
        assert report.assessment.window_incident_count == 3

    def test_old_incident_counts_for_nearby_not_safety(self, settings, ago):
        old = make_incident("old", at=offset_north(NYC, 100), timestamp=ago(days=8))
        service = _service(settings, [old])

        report = service.safety(NYC, now=NOW)
        assert report.assessment.tier is SafetyTier.SAFE
        assert report.assessment.window_incident_count == 0
        assert report.nearby == [old]
        assert service.nearby(NYC, 1000) == [old]

    def test_uses_fixed_safety_radius(self, settings):
        outside = make_incident("outside", at=offset_north(NYC, 1500), timestamp=NOW)
        report = _service(settings, [outside]).safety(NYC, now=NOW)
        assert report.radius_m == 1000
        assert report.nearby == []
        assert report.assessment.tier is SafetyTier.SAFE

    def test_report_shape(self, settings, ago):
        recent = make_incident("recent", timestamp=ago(days=1))
        old = make_incident("old", timestamp=ago(days=9))
        body = _service(settings, [recent, old]).safety(NYC, now=NOW).to_dict()

        assert body["level"] == "warning"
        assert body["description"] == "Alert Zone - Few incidents reported recently"
        assert body["color"] == "#FFC107"
        assert body["incidentCount"] == 1
        assert [i["id"] for i in body["recentIncidents"]] == ["recent"]
        assert [i["id"] for i in body["incidents"]] == ["recent", "old"]
        assert body["location"] == {"lat": NYC.lat, "lng": NYC.lng}


# ── Feed, lookup, stats ──────────────────────────────────────────────────


class TestFeedAndStats:
    def test_feed_limit(self, settings, ago):
        incidents = [make_incident(str(n), timestamp=ago(minutes=n)) for n in range(5)]
        settings.feed_limit = 3
        service = _service(settings, incidents, raw=True)
        assert [i.id for i in service.feed()] == ["0", "1", "2"]

    def test_get_hides_unapproved(self, settings):
        service = _service(settings, [make_incident("p", status="pending"), make_incident("a")])
        assert service.get("p") is None
        assert service.get("missing") is None
        assert service.get("a").id == "a"

    def test_get_upstream_failure(self, settings):
        with pytest.raises(UpstreamUnavailable):
            _service(settings, fail=True).get("a")

    def test_stats(self, settings, ago):
        incidents = [
            make_incident("1", category="Theft", timestamp=ago(hours=1)),
            make_incident("2", category="Theft", timestamp=ago(days=3)),
            make_incident("3", category="Vandalism", timestamp=ago(hours=23)),
            make_incident("4", category="Violence", timestamp=ago(days=2)),
            make_incident("5", category="Theft", status="pending"),
        ]
        stats = _service(settings, incidents).stats(now=NOW)
        assert stats["totalIncidents"] == 4
        assert stats["recentIncidents"] == 2
        assert stats["categoryStats"] == [
            {"category": "Theft", "count": 2},
            {"category": "Vandalism", "count": 1},
            {"category": "Violence", "count": 1},
        ]
