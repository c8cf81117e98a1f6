"""Spatial and temporal incident filters.

Each filter is an order-preserving subsequence of its input, so they compose
in any order with the same result set.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from safe_city.geo import distance
from safe_city.models import Incident, ProximityQuery


def filter_nearby(candidates: Iterable[Incident], query: ProximityQuery) -> list[Incident]:
    """Keep incidents within ``query.radius_m`` of ``query.center`` (inclusive).

    Purely spatial; ``query.since`` is ignored here, see ``filter_since``.
    """
    return [
        incident for incident in candidates
        if distance(query.center, incident.location) <= query.radius_m
    ]


def filter_since(candidates: Iterable[Incident], since: datetime | None) -> list[Incident]:
    """Keep incidents with ``timestamp >= since``. ``None`` keeps everything."""
    if since is None:
        return list(candidates)
    return [incident for incident in candidates if incident.timestamp >= since]


def filter_approved(candidates: Iterable[Incident]) -> list[Incident]:
    """Keep incidents whose moderation status allows public visibility."""
    return [incident for incident in candidates if incident.is_approved]


def sort_most_recent_first(incidents: Iterable[Incident]) -> list[Incident]:
    return sorted(incidents, key=lambda i: i.timestamp, reverse=True)
