"""
Geocoding and routing over the Google Maps web services.

Both calls are best-effort: a missing key, a timeout, a transport error or a
non-``OK`` status all come back as ``None`` and the caller keeps what it had.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

import httpx

from trip_companion.core.config import settings
from trip_companion.core.logging import get_logger, log_event, monotonic_ms

logger = get_logger(__name__)

MAX_ADDRESS_CHARS = 220
MAX_ROUTE_ENDPOINT_CHARS = 180


@dataclass(frozen=True)
class GeocodeMatch:
    formatted_address: str
    place_id: str | None = None
    lat: float | None = None
    lng: float | None = None


class MapsClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        geocode_timeout: float | None = None,
        directions_timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.maps_api_key
        self.base_url = (base_url or settings.maps_base_url).rstrip("/")
        self.geocode_timeout = geocode_timeout or settings.maps_geocode_timeout_seconds
        self.directions_timeout = directions_timeout or settings.maps_directions_timeout_seconds
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_json(self, path: str, *, params: dict[str, str], timeout: float) -> dict | None:
        with httpx.Client(timeout=timeout, transport=self._transport) as client:
            resp = client.get(f"{self.base_url}/{path}", params={**params, "key": self.api_key})
        if resp.status_code >= 400:
            return None
        try:
            data = resp.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def geocode(self, query: str, *, region: str | None = None) -> GeocodeMatch | None:
        if not self.configured:
            return None
        query = (query or "").strip()
        if not query or len(query) > MAX_ADDRESS_CHARS:
            return None

        params = {"address": query}
        if region:
            params["region"] = region
        start = time.monotonic()
        try:
            data = self._get_json("geocode/json", params=params, timeout=self.geocode_timeout)
        except httpx.HTTPError as e:
            log_event(
                logger,
                "geocode.error",
                error_type=type(e).__name__,
                duration_ms=monotonic_ms(start),
            )
            return None

        status = (data or {}).get("status")
        results = (data or {}).get("results") or []
        if status != "OK" or not results:
            log_event(logger, "geocode.miss", status=status, duration_ms=monotonic_ms(start))
            return None
        first = results[0]
        formatted = str(first.get("formatted_address") or "").strip()
        if not formatted:
            log_event(logger, "geocode.miss", status="EMPTY_ADDRESS")
            return None
        location = (first.get("geometry") or {}).get("location") or {}
        return GeocodeMatch(
            formatted_address=formatted,
            place_id=first.get("place_id") or None,
            lat=location.get("lat"),
            lng=location.get("lng"),
        )

    def route_distance_meters(
        self,
        origin: str,
        destination: str,
        waypoints: list[str],
        *,
        region: str | None = None,
    ) -> int | None:
        """Total driving distance over all legs of the first route, in meters."""
        if not self.configured:
            return None
        if not origin.strip() or not destination.strip():
            return None
        if len(origin) > MAX_ROUTE_ENDPOINT_CHARS or len(destination) > MAX_ROUTE_ENDPOINT_CHARS:
            return None

        params = {"origin": origin, "destination": destination, "mode": "driving"}
        if waypoints:
            params["waypoints"] = "|".join(waypoints)
        if region:
            params["region"] = region
        start = time.monotonic()
        try:
            data = self._get_json("directions/json", params=params, timeout=self.directions_timeout)
        except httpx.HTTPError as e:
            log_event(
                logger,
                "route.error",
                error_type=type(e).__name__,
                duration_ms=monotonic_ms(start),
            )
            return None

        status = (data or {}).get("status")
        routes = (data or {}).get("routes") or []
        if status != "OK" or not routes:
            log_event(logger, "route.miss", status=status, duration_ms=monotonic_ms(start))
            return None
        total = 0
        for leg in routes[0].get("legs") or []:
            value = (leg.get("distance") or {}).get("value")
            if isinstance(value, int | float):
                total += int(value)
        log_event(
            logger,
            "route.done",
            waypoints=len(waypoints),
            distance_m=total,
            duration_ms=monotonic_ms(start),
        )
        return total if total > 0 else None
