"""Read-side contract the query layer needs from incident storage."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from safe_city.models import Incident


class IncidentRepository(Protocol):
    """Anything that can list approved incidents.

    Implementations should return rows most recent first. ``since`` and
    ``limit`` are pushdown hints; the query layer re-applies the time filter
    and ordering, so a store that ignores them is still correct (just slower).
    """

    def find_approved(
        self,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Incident]:
        ...

    def get(self, incident_id: str) -> Optional[Incident]:
        ...
