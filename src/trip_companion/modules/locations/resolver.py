"""
Location Resolver: turns extracted location strings into reviewable stops.

For each raw string, in input order:

1. context injection: when the string mentions neither the user's city nor
   country, both are appended to the geocoding query (never to the raw text);
2. geocoding with a region bias from the user's country; a match replaces the
   display text with the canonical address, anything else keeps the raw text.

Then one route from the base address through every stop and back gives the
trip distance. A failure on one stop never affects the others, and a routing
failure keeps the distance the caller already had.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from trip_companion.core.logging import get_logger, log_event, log_exception
from trip_companion.core.resolved import Resolved
from trip_companion.modules.identity.models import UserProfile
from trip_companion.modules.locations.countries import country_code
from trip_companion.modules.locations.maps import MapsClient

logger = get_logger(__name__)

# Directions accepts at most 25 intermediate waypoints.
MAX_ROUTE_WAYPOINTS = 25


@dataclass(frozen=True)
class LocationCandidate:
    raw_text: str
    formatted_address: str | None = None
    place_id: str | None = None
    lat: float | None = None
    lng: float | None = None
    used_fallback: bool = False
    reason: str | None = None

    @property
    def display(self) -> str:
        return self.formatted_address or self.raw_text


@dataclass(frozen=True)
class OptimizedRoute:
    locations: list[LocationCandidate]
    distance_km: float | None
    fallbacks: list[str] = field(default_factory=list)


def geocode_query(raw: str, *, city: str | None, country: str | None) -> str:
    city = (city or "").strip()
    country = (country or "").strip()
    lower = raw.lower()
    has_context = (city and city.lower() in lower) or (country and country.lower() in lower)
    if not has_context and city and country:
        return f"{raw}, {city}, {country}"
    return raw


class LocationResolver:
    def __init__(self, maps: MapsClient | None = None) -> None:
        self.maps = maps or MapsClient()

    def resolve(self, raw_locations: list[str], profile: UserProfile) -> list[LocationCandidate]:
        """One candidate per input, same order; unresolved stops keep their raw text."""
        if not self.maps.configured:
            return [
                LocationCandidate(raw_text=raw, used_fallback=True, reason="maps_not_configured")
                for raw in raw_locations
            ]
        region = country_code(profile.country)
        return [self._resolve_one(i, raw, profile, region) for i, raw in enumerate(raw_locations)]

    def _resolve_one(
        self, index: int, raw: str, profile: UserProfile, region: str | None
    ) -> LocationCandidate:
        text = (raw or "").strip()
        if not text:
            return LocationCandidate(raw_text=raw, used_fallback=True, reason="empty")
        query = geocode_query(text, city=profile.city, country=profile.country)
        try:
            match = self.maps.geocode(query, region=region)
        except Exception:
            log_exception(logger, "geocode.failed", position=index)
            return LocationCandidate(raw_text=raw, used_fallback=True, reason="geocode_error")
        if match is None:
            return LocationCandidate(raw_text=raw, used_fallback=True, reason="no_match")
        return LocationCandidate(
            raw_text=raw,
            formatted_address=match.formatted_address,
            place_id=match.place_id,
            lat=match.lat,
            lng=match.lng,
        )

    def route_distance(
        self,
        profile: UserProfile,
        locations: list[str],
        current_km: float | None = None,
        *,
        max_waypoints: int = MAX_ROUTE_WAYPOINTS,
    ) -> Resolved[float | None]:
        base = (profile.base_address or "").strip()
        stops = [s.strip() for s in locations if s and s.strip()]
        if not base:
            return Resolved.fallback(current_km, reason="no_base_address")
        if not stops:
            return Resolved.fallback(current_km, reason="no_locations")
        if len(stops) > min(max_waypoints, MAX_ROUTE_WAYPOINTS):
            return Resolved.fallback(current_km, reason="too_many_waypoints")

        try:
            meters = self.maps.route_distance_meters(
                base, base, stops, region=country_code(profile.country)
            )
        except Exception:
            log_exception(logger, "route.failed", waypoints=len(stops))
            return Resolved.fallback(current_km, reason="route_error")
        if meters is None:
            return Resolved.fallback(current_km, reason="route_unavailable")
        return Resolved.primary(round(meters / 1000, 1))

    def optimize(
        self,
        raw_locations: list[str],
        profile: UserProfile,
        *,
        current_km: float | None = None,
        max_waypoints: int = MAX_ROUTE_WAYPOINTS,
    ) -> OptimizedRoute:
        candidates = self.resolve(raw_locations, profile)
        fallbacks = [
            f"location[{i}]:{c.reason}" for i, c in enumerate(candidates) if c.used_fallback
        ]
        distance = self.route_distance(
            profile,
            [c.display for c in candidates],
            current_km,
            max_waypoints=max_waypoints,
        )
        if distance.used_fallback:
            fallbacks.append(f"distance:{distance.reason}")
        log_event(
            logger,
            "locations.optimized",
            locations=len(candidates),
            geocoded=sum(1 for c in candidates if not c.used_fallback),
            distance_km=distance.value,
            fallbacks=len(fallbacks),
        )
        return OptimizedRoute(
            locations=candidates, distance_km=distance.value, fallbacks=fallbacks
        )
