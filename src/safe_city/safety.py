"""Safety tier classification from recent nearby incidents."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta

from safe_city.models import Incident, SafetyAssessment, SafetyTier

SAFETY_WINDOW = timedelta(days=7)

# Upper bound (inclusive) on recent incidents for the WARNING tier
WARNING_MAX_COUNT = 2

TIER_DESCRIPTIONS = {
    SafetyTier.SAFE: "Safe Zone - No recent incidents reported",
    SafetyTier.WARNING: "Alert Zone - Few incidents reported recently",
    SafetyTier.DANGER: "High Risk Zone - Multiple incidents reported",
}

TIER_COLORS = {
    SafetyTier.SAFE: "#4CAF50",
    SafetyTier.WARNING: "#FFC107",
    SafetyTier.DANGER: "#F44336",
}


def tier_for_count(count: int) -> SafetyTier:
    """0 → SAFE, 1–2 → WARNING, 3+ → DANGER."""
    if count == 0:
        return SafetyTier.SAFE
    if count <= WARNING_MAX_COUNT:
        return SafetyTier.WARNING
    return SafetyTier.DANGER


def classify(
    nearby_approved: Sequence[Incident],
    as_of: datetime,
    window: timedelta = SAFETY_WINDOW,
) -> SafetyAssessment:
    """Assess safety from incidents already filtered by radius and moderation.

    Only incidents strictly newer than ``as_of - window`` count, so one that is
    exactly ``window`` old is excluded.
    """
    cutoff = as_of - window
    recent = [incident for incident in nearby_approved if incident.timestamp > cutoff]

    return SafetyAssessment(
        tier=tier_for_count(len(recent)),
        window_incident_count=len(recent),
        matched_incidents=recent,
    )
