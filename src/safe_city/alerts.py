"""Polling "new danger nearby" watcher.

Calls ``/api/incidents/recent`` on a fixed interval with a trailing ``since``
watermark and reports incidents it has not reported before. The server side
stays stateless; the watermark and the seen-set live here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.panel import Panel

from safe_city.clients.api_client import SafeCityClient
from safe_city.geo import GeoPoint
from safe_city.models import Incident

logger = logging.getLogger(__name__)

console = Console()


class DangerAlertWatcher:
    """Polls one location and yields incidents it has not reported yet."""

    def __init__(
        self,
        client: SafeCityClient,
        center: GeoPoint,
        radius_m: float = 1000.0,
        interval_seconds: int = 30,
        lookback: timedelta = timedelta(minutes=5),
    ):
        self.client = client
        self.center = center
        self.radius_m = radius_m
        self.interval_seconds = interval_seconds
        self.lookback = lookback
        self._seen: dict[str, datetime] = {}  # incident id → timestamp

    async def poll_once(self, now: datetime | None = None) -> list[Incident]:
        """One poll. Returns unseen incidents, most recent first."""
        now = now or datetime.now(timezone.utc)
        since = now - self.lookback

        incidents = await self.client.fetch_recent(self.center, self.radius_m, since=since)

        # Anything older than the watermark can't come back, forget it
        self._seen = {uid: ts for uid, ts in self._seen.items() if ts >= since}

        fresh = [i for i in incidents if i.id not in self._seen]
        for incident in fresh:
            self._seen[incident.id] = incident.timestamp
        return fresh

    async def run(self, on_alert: Callable[[Incident, GeoPoint], None]) -> None:
        """Poll until a request is rejected.

        Exhausted retries are logged and the loop carries on; InvalidInput
        (a 4xx from the server) ends it.
        """
        try:
            while True:
                try:
                    for incident in await self.poll_once():
                        on_alert(incident, self.center)
                except RuntimeError as exc:
                    logger.error("Alert poll failed: %s", exc)

                await asyncio.sleep(self.interval_seconds)
        finally:
            await self.client.close()


def render_alert(incident: Incident, center: GeoPoint) -> Panel:
    meters = incident.distance_from(center)
    body = "\n".join([
        f"[bold]{incident.title}[/]",
        f"Category: {incident.category}",
        f"Distance: {meters:.0f}m away",
        f"Time: {incident.timestamp:%Y-%m-%d %H:%M UTC} ({incident.time_ago()})",
    ])
    return Panel(body, title="🚨 DANGER ALERT", border_style="red")


def print_alert(incident: Incident, center: GeoPoint) -> None:
    console.print(render_alert(incident, center))


def run_watch(
    client: SafeCityClient,
    center: GeoPoint,
    radius_m: float,
    interval_seconds: int,
    lookback_minutes: int,
) -> None:
    """Entry point: watch ``center`` until interrupted."""
    watcher = DangerAlertWatcher(
        client,
        center,
        radius_m=radius_m,
        interval_seconds=interval_seconds,
        lookback=timedelta(minutes=lookback_minutes),
    )
    console.print(
        f"Watching ({center.lat:.5f}, {center.lng:.5f}) within {radius_m:.0f}m "
        f"every {interval_seconds}s"
    )
    try:
        asyncio.run(watcher.run(print_alert))
    except KeyboardInterrupt:
        console.print("\nStopped watching.")
