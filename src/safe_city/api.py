"""HTTP API for nearby, recent and safety incident queries."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone

from flask import Flask, jsonify, request

from safe_city.errors import InvalidInput, UpstreamUnavailable
from safe_city.queries import IncidentQueryService, build_query, parse_point
from safe_city.settings import Settings, load_settings

logger = logging.getLogger(__name__)


def create_app(service: IncidentQueryService | None = None, settings: Settings | None = None) -> Flask:
    """Build the Flask app. Without a service, reads from PostgreSQL."""
    settings = settings or (service.settings if service else load_settings())
    if service is None:
        from safe_city.db import PostgresIncidentRepository
        service = IncidentQueryService(PostgresIncidentRepository(settings.database_url), settings)

    app = Flask(__name__)
    app.config["QUERY_SERVICE"] = service

    @app.errorhandler(InvalidInput)
    def invalid_input(exc: InvalidInput):
        logger.info("Rejected %s: %s", request.path, exc)
        return jsonify({"error": exc.message}), 400

    @app.errorhandler(UpstreamUnavailable)
    def upstream_unavailable(exc: UpstreamUnavailable):
        logger.error("%s failed: %s", request.path, exc, exc_info=True)
        return jsonify({"error": str(exc)}), 503

    @app.route("/api/incidents", methods=["GET"])
    def list_incidents():
        """Public feed of approved incidents, most recent first."""
        return jsonify([i.to_dict() for i in service.feed()]), 200

    @app.route("/api/incidents/nearby", methods=["GET"])
    def nearby():
        args = request.args
        query = build_query(
            args.get("lat"), args.get("lng"), args.get("radius"),
            default_radius=settings.default_radius_m,
        )
        incidents = service.nearby(query.center, query.radius_m)
        return jsonify([i.to_dict() for i in incidents]), 200

    @app.route("/api/incidents/recent", methods=["GET"])
    def recent():
        """Polled by clients for new incidents since a watermark (default: last 5 min)."""
        args = request.args
        query = build_query(
            args.get("lat"), args.get("lng"), args.get("radius"), args.get("since"),
            default_radius=settings.default_radius_m,
        )
        since = query.since or datetime.now(timezone.utc) - timedelta(
            minutes=settings.recent_lookback_minutes
        )
        incidents = service.recent(query.center, query.radius_m, since=since)
        return jsonify([i.to_dict() for i in incidents]), 200

    @app.route("/api/incidents/stats/summary", methods=["GET"])
    def stats_summary():
        return jsonify(service.stats()), 200

    @app.route("/api/incidents/<incident_id>", methods=["GET"])
    def get_incident(incident_id: str):
        incident = service.get(incident_id)
        if incident is None:
            return jsonify({"error": "Incident not found"}), 404
        return jsonify(incident.to_dict()), 200

    @app.route("/api/safety", methods=["GET"])
    def safety():
        """Click-to-analyze: safety tier for a point."""
        point = parse_point(request.args.get("lat"), request.args.get("lng"))
        return jsonify(service.safety(point).to_dict()), 200

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    @app.route("/", methods=["GET"])
    def root():
        return jsonify({"service": "safe-city", "status": "running"}), 200

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    port = int(os.environ.get("PORT", 8080))
    create_app().run(host="0.0.0.0", port=port, debug=False)
