"""CLI entrypoint for safe-city."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.table import Table

from safe_city.errors import InvalidInput, UpstreamUnavailable
from safe_city.geo import GeoPoint
from safe_city.models import Incident
from safe_city.queries import IncidentQueryService, build_query, parse_point, parse_radius
from safe_city.safety import TIER_DESCRIPTIONS
from safe_city.settings import load_settings

console = Console()

_TIER_STYLE = {"safe": "green", "warning": "yellow", "danger": "red"}


def _service() -> IncidentQueryService:
    from safe_city.db import PostgresIncidentRepository
    settings = load_settings()
    return IncidentQueryService(PostgresIncidentRepository(settings.database_url), settings)


@contextmanager
def _query_errors():
    try:
        yield
    except InvalidInput as exc:
        raise click.UsageError(exc.message) from exc
    except UpstreamUnavailable as exc:
        raise click.ClickException(str(exc)) from exc


def _incident_table(title: str, incidents: list[Incident], lat: float, lng: float) -> Table:
    center = GeoPoint(lat, lng)
    now = datetime.now(timezone.utc)

    table = Table(title=title)
    table.add_column("Category", style="bold")
    table.add_column("Title")
    table.add_column("Distance (m)", justify="right")
    table.add_column("When")

    for incident in incidents:
        table.add_row(
            incident.category,
            incident.title,
            f"{incident.distance_from(center):.0f}",
            incident.time_ago(now),
        )
    return table


@click.group()
def cli():
    """Safe City — community incident proximity and safety queries."""


@cli.command("init-db")
def init_db_cmd():
    """Create the incidents table."""
    from safe_city.db import init_db
    init_db(load_settings().database_url)
    click.echo("Database initialized.")


@cli.command()
@click.argument("path", type=click.File("r"))
def seed(path):
    """Load incidents from a JSON array file into PostgreSQL."""
    from safe_city.db import insert_incident
    dsn = load_settings().database_url

    rows = json.load(path)
    inserted = 0
    for row in rows:
        if insert_incident(Incident.from_dict(row), dsn):
            inserted += 1
    click.echo(f"Loaded {inserted} new incident(s) of {len(rows)}.")


@cli.command()
@click.option("--lat", required=True, help="Latitude of the query point.")
@click.option("--lng", required=True, help="Longitude of the query point.")
@click.option("--radius", default=None, help="Radius in meters (default 1000).")
def nearby(lat: str, lng: str, radius: str | None):
    """Approved incidents near a point, most recent first."""
    service = _service()
    with _query_errors():
        query = build_query(lat, lng, radius, default_radius=service.settings.default_radius_m)
        incidents = service.nearby(query.center, query.radius_m)

    console.print(_incident_table(
        f"Incidents within {query.radius_m:.0f}m", incidents, query.center.lat, query.center.lng,
    ))


@cli.command()
@click.option("--lat", required=True, help="Latitude of the query point.")
@click.option("--lng", required=True, help="Longitude of the query point.")
@click.option("--radius", default=None, help="Radius in meters (default 1000).")
@click.option("--since", default=None, help="ISO 8601 watermark (default: 5 minutes ago).")
def recent(lat: str, lng: str, radius: str | None, since: str | None):
    """Approved incidents near a point reported since a watermark."""
    service = _service()
    with _query_errors():
        query = build_query(lat, lng, radius, since, default_radius=service.settings.default_radius_m)
        incidents = service.recent(query.center, query.radius_m, since=query.since)

    console.print(_incident_table(
        f"Recent incidents within {query.radius_m:.0f}m", incidents, query.center.lat, query.center.lng,
    ))


@cli.command()
@click.option("--lat", required=True, help="Latitude of the point to analyze.")
@click.option("--lng", required=True, help="Longitude of the point to analyze.")
def safety(lat: str, lng: str):
    """Safety tier for a point from the last 7 days of nearby incidents."""
    service = _service()
    with _query_errors():
        report = service.safety(parse_point(lat, lng))

    tier = report.assessment.tier
    color = _TIER_STYLE[tier.value]
    console.print(f"[bold {color}]{tier.value.upper()}[/] — {TIER_DESCRIPTIONS[tier]}")
    console.print(f"Recent incidents (7 days): [bold]{report.assessment.window_incident_count}[/]")
    console.print(_incident_table(
        f"All incidents within {report.radius_m:.0f}m", report.nearby, report.center.lat, report.center.lng,
    ))


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address.")
@click.option("--port", default=8080, help="HTTP port.")
def serve(host: str, port: int):
    """Run the HTTP API."""
    from safe_city.api import create_app
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    create_app().run(host=host, port=port, debug=False)


@cli.command()
@click.option("--lat", required=True, help="Latitude to watch.")
@click.option("--lng", required=True, help="Longitude to watch.")
@click.option("--radius", default=None, help="Radius in meters (default 1000).")
@click.option("--interval", default=None, type=int, help="Polling interval in seconds (default 30).")
@click.option("--api", "api_url", default=None, help="API base URL (default $SAFE_CITY_API).")
def watch(lat: str, lng: str, radius: str | None, interval: int | None, api_url: str | None):
    """Poll the API and print an alert for each new nearby incident."""
    from safe_city.alerts import run_watch
    from safe_city.clients.api_client import SafeCityClient

    settings = load_settings()
    if api_url:
        settings.api_base_url = api_url.rstrip("/")
    with _query_errors():
        center = parse_point(lat, lng)
        radius_m = parse_radius(radius, settings.default_radius_m)

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    with _query_errors():
        run_watch(
            SafeCityClient.from_settings(settings),
            center,
            radius_m=radius_m,
            interval_seconds=interval or settings.poll_interval_seconds,
            lookback_minutes=settings.recent_lookback_minutes,
        )


@cli.command("web")
@click.option("--port", default=8501, help="Streamlit port.")
def web(port: int):
    """Launch the Streamlit safety map."""
    import pathlib
    import subprocess
    import sys
    subprocess.run([
        sys.executable, "-m", "streamlit", "run",
        str(pathlib.Path(__file__).parent / "dashboard_web.py"),
        "--server.port", str(port),
        "--theme.base", "dark",
        "--server.headless", "true",
    ])
