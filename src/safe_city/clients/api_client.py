"""Async client for the Safe City incident API — used by pollers and tools."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import httpx

from safe_city.errors import InvalidInput
from safe_city.geo import GeoPoint
from safe_city.models import Incident
from safe_city.settings import Settings

logger = logging.getLogger(__name__)


class SafeCityClient:
    """Async HTTP client for ``/api/incidents/*`` and ``/api/safety``.

    Server errors and transport failures are retried with exponential backoff;
    a 4xx is the caller's fault and raises InvalidInput straight away.
    """

    def __init__(
        self,
        base_url: str,
        max_retries: int = 3,
        retry_backoff_base: float = 2.0,
        timeout_seconds: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> SafeCityClient:
        return cls(
            settings.api_base_url,
            max_retries=settings.max_retries,
            retry_backoff_base=settings.retry_backoff_base,
            timeout_seconds=settings.timeout_seconds,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_nearby(self, center: GeoPoint, radius_m: float) -> list[Incident]:
        params = {"lat": center.lat, "lng": center.lng, "radius": radius_m}
        rows = await self._request_with_retry("/api/incidents/nearby", params)
        return [Incident.from_dict(row) for row in rows]

    async def fetch_recent(
        self,
        center: GeoPoint,
        radius_m: float,
        since: datetime | None = None,
    ) -> list[Incident]:
        """Incidents near ``center`` reported at or after ``since``.

        Without ``since`` the server applies its default lookback.
        """
        params = {"lat": center.lat, "lng": center.lng, "radius": radius_m}
        if since is not None:
            params["since"] = since.isoformat()
        rows = await self._request_with_retry("/api/incidents/recent", params)
        return [Incident.from_dict(row) for row in rows]

    async def fetch_safety(self, center: GeoPoint) -> dict:
        return await self._request_with_retry("/api/safety", {"lat": center.lat, "lng": center.lng})

    async def _request_with_retry(self, path: str, params: dict):
        """GET ``path`` and decode JSON, with exponential backoff retry."""
        client = await self._get_client()
        last_exc: Exception | None = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = await client.get(path, params=params)
                if 400 <= resp.status_code < 500:
                    raise InvalidInput([_error_message(resp)])
                resp.raise_for_status()
                return resp.json()
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                last_exc = exc
                if attempt < self.max_retries:
                    backoff = self.retry_backoff_base ** attempt
                    logger.warning(
                        "%s: attempt %d/%d failed (%s), retrying in %.1fs",
                        path, attempt + 1, self.max_retries + 1, exc, backoff,
                    )
                    await asyncio.sleep(backoff)

        raise RuntimeError(
            f"{path}: all {self.max_retries + 1} attempts failed"
        ) from last_exc


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("error"):
        return body["error"]
    return f"HTTP {resp.status_code}"
