"""
Emission factors from external data services, cached per process.

Fuel factors (kg CO2e per litre) come from Climatiq and rarely change, so they
are cached for weeks; grid carbon intensity comes from Electricity Maps and is
cached for minutes. Lookups never fail the caller: an unconfigured or failing
service, or a payload that does not validate, yields the static fallback value
tagged ``used_fallback``. Fallback values are not cached, so the next call
tries the service again.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass
from typing import Any

import httpx

from trip_companion.core.cache import TTLCache, cache_key
from trip_companion.core.config import settings
from trip_companion.core.errors import ErrorKind, PipelineError
from trip_companion.core.logging import get_logger, log_event, monotonic_ms
from trip_companion.core.resolved import Resolved

logger = get_logger(__name__)

FUEL_CACHE_VERSION = "v2"
GRID_CACHE_VERSION = "v1"
DEFAULT_DATA_VERSION = "^21"
DEFAULT_ACTIVITY_IDS: dict[str, str] = {
    "gasoline": "fuel_type_motor_gasoline-fuel_use_na",
    "diesel": "fuel_type_diesel-fuel_use_na",
}
FUEL_FALLBACK_KG_PER_LITER: dict[str, float] = {"diesel": 2.68, "gasoline": 2.31}
GRID_FALLBACK_KG_PER_KWH = 0.05

_ZONE_RE = re.compile(r"^[A-Z0-9]{2,3}(-[A-Z0-9]{2,4})?$")
_CO2E_TO_KG: dict[str, float] = {
    "g": 0.001,
    "kg": 1.0,
    "t": 1000.0,
    "tonne": 1000.0,
    "tonnes": 1000.0,
}

fuel_factor_cache: TTLCache[FuelFactor] = TTLCache(max_entries=settings.factor_cache_max_entries)
grid_intensity_cache: TTLCache[GridIntensity] = TTLCache(
    max_entries=settings.factor_cache_max_entries
)
# Activity ids found through the search endpoint, per fuel type.
_discovered_activity_ids: dict[str, str] = {}


class FactorPayloadError(ValueError):
    pass


@dataclass(frozen=True)
class FuelFactor:
    fuel_type: str
    kg_co2e_per_liter: float
    source: str
    provider: str | None = None
    activity_id: str | None = None
    data_version: str | None = None
    region: str | None = None
    year: int | None = None


@dataclass(frozen=True)
class GridIntensity:
    zone: str
    g_co2_per_kwh: float
    kg_co2_per_kwh: float
    source: str
    datetime: str | None = None


def normalize_fuel_type(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    v = value.strip().lower()
    if v in {"gasoline", "petrol"}:
        return "gasoline"
    if v == "diesel":
        return "diesel"
    return None


def normalize_zone(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    zone = value.strip().upper()
    if not zone or len(zone) > 16 or not _ZONE_RE.match(zone):
        return None
    return zone


def co2e_to_kg(value: float, unit: str) -> float | None:
    factor = _CO2E_TO_KG.get(unit.strip().lower())
    return value * factor if factor is not None else None


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout, follow_redirects=True)


def get_fuel_factor(fuel_type: str) -> Resolved[FuelFactor]:
    normalized = normalize_fuel_type(fuel_type)
    if normalized is None:
        raise PipelineError(ErrorKind.VALIDATION, "invalid_fuel_type")

    region = (settings.climatiq_region or "AT").strip().upper()
    data_version = (settings.climatiq_data_version or "").strip() or DEFAULT_DATA_VERSION
    key = cache_key("fuel", normalized, region, data_version, version=FUEL_CACHE_VERSION)

    cached = fuel_factor_cache.get(key)
    if cached is not None:
        log_event(logger, "factor.cache.hit", factor="fuel", cache_key=key)
        return Resolved.primary(cached)

    if not settings.climatiq_api_key:
        return _fuel_fallback(normalized, reason="not_configured")

    start = time.monotonic()
    try:
        factor = _fetch_fuel_factor(normalized, region=region, data_version=data_version)
    except httpx.HTTPError as e:
        return _fuel_fallback(normalized, reason=f"upstream_error:{type(e).__name__}")
    except FactorPayloadError as e:
        return _fuel_fallback(normalized, reason=str(e))

    fuel_factor_cache.put(key, factor, ttl_seconds=settings.factor_cache_ttl_seconds)
    log_event(
        logger,
        "factor.fetched",
        factor="fuel",
        fuel_type=normalized,
        activity_id=factor.activity_id,
        kg_co2e_per_liter=factor.kg_co2e_per_liter,
        duration_ms=monotonic_ms(start),
    )
    return Resolved.primary(factor)


def _fuel_fallback(fuel_type: str, *, reason: str) -> Resolved[FuelFactor]:
    log_event(logger, "factor.fallback", factor="fuel", fuel_type=fuel_type, reason=reason)
    return Resolved.fallback(
        FuelFactor(
            fuel_type=fuel_type,
            kg_co2e_per_liter=FUEL_FALLBACK_KG_PER_LITER[fuel_type],
            source="fallback",
        ),
        reason=reason,
    )


def _activity_id(fuel_type: str) -> str:
    configured = (
        settings.climatiq_activity_id_gasoline
        if fuel_type == "gasoline"
        else settings.climatiq_activity_id_diesel
    )
    if configured and configured.strip():
        return configured.strip()
    return _discovered_activity_ids.get(fuel_type) or DEFAULT_ACTIVITY_IDS[fuel_type]


def _fetch_fuel_factor(fuel_type: str, *, region: str, data_version: str) -> FuelFactor:
    with _http_client(settings.climatiq_timeout_seconds) as client:
        activity_id = _activity_id(fuel_type)
        data = _estimate(client, activity_id=activity_id, region=region, data_version=data_version)
        if data is None:
            discovered = _search_activity_id(
                client, fuel_type=fuel_type, region=region, data_version=data_version
            )
            if discovered and discovered != activity_id:
                activity_id = discovered
                data = _estimate(
                    client, activity_id=activity_id, region=region, data_version=data_version
                )
                if data is not None:
                    _discovered_activity_ids[fuel_type] = discovered
                    log_event(
                        logger,
                        "factor.activity_discovered",
                        fuel_type=fuel_type,
                        activity_id=discovered,
                    )
    if data is None:
        raise FactorPayloadError("upstream_rejected")

    try:
        co2e = float(data.get("co2e"))
    except (TypeError, ValueError) as e:
        raise FactorPayloadError("invalid_co2e") from e
    unit = data.get("co2e_unit") if isinstance(data.get("co2e_unit"), str) else "kg"
    co2e_kg = co2e_to_kg(co2e, unit) if math.isfinite(co2e) else None
    if co2e <= 0 or co2e_kg is None or not math.isfinite(co2e_kg) or co2e_kg <= 0:
        raise FactorPayloadError("invalid_co2e")

    emission_factor = data.get("emission_factor") or {}
    if not isinstance(emission_factor, dict):
        raise FactorPayloadError("invalid_emission_factor")
    year = str(emission_factor.get("year") or "")
    return FuelFactor(
        fuel_type=fuel_type,
        kg_co2e_per_liter=round(co2e_kg, 6),
        source="data",
        provider=emission_factor.get("source") or "climatiq",
        activity_id=activity_id,
        data_version=data_version,
        region=emission_factor.get("region"),
        year=int(year) if year.isdigit() else None,
    )


def _estimate(
    client: httpx.Client, *, activity_id: str, region: str, data_version: str
) -> dict[str, Any] | None:
    resp = client.post(
        f"{settings.climatiq_base_url.rstrip('/')}/estimate",
        headers={
            "Authorization": f"Bearer {settings.climatiq_api_key}",
            "Accept": "application/json",
        },
        json={
            "emission_factor": {
                "activity_id": activity_id,
                "data_version": data_version,
                "region": region,
            },
            "parameters": {"volume": 1, "volume_unit": "l"},
        },
    )
    if resp.status_code >= 400:
        log_event(
            logger,
            "factor.estimate.rejected",
            activity_id=activity_id,
            status_code=resp.status_code,
        )
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _search_activity_id(
    client: httpx.Client, *, fuel_type: str, region: str, data_version: str
) -> str | None:
    query = {
        "gasoline": "fuel-type_motor_gasoline fuel_use",
        "diesel": "fuel-type_diesel fuel_use",
    }[fuel_type]
    resp = client.get(
        f"{settings.climatiq_base_url.rstrip('/')}/search",
        headers={
            "Authorization": f"Bearer {settings.climatiq_api_key}",
            "Accept": "application/json",
        },
        params={
            "query": query,
            "data_version": data_version,
            "results_per_page": 20,
            "unit_type": "Volume",
            "source_lca_activity": "fuel_combustion",
            "region": region,
        },
    )
    if resp.status_code >= 400:
        return None
    try:
        results = resp.json().get("results") or []
    except (ValueError, AttributeError):
        return None

    accepted_regions = {region, "GLOBAL", ""}
    for r in results:
        if not isinstance(r, dict):
            continue
        activity_id = str(r.get("activity_id") or "").strip()
        unit_type = str(r.get("unit_type") or "").strip().lower()
        unit = str(r.get("unit") or "").strip().lower()
        result_region = str(r.get("region") or "").strip().upper()
        if not activity_id:
            continue
        if unit_type and unit_type != "volume":
            continue
        if unit and unit != "l":
            continue
        if result_region not in accepted_regions:
            continue
        return activity_id
    return None


def get_grid_intensity(zone: str | None = None) -> Resolved[GridIntensity]:
    normalized = (
        normalize_zone(zone) or normalize_zone(settings.electricity_maps_default_zone) or "AT"
    )
    key = cache_key("grid", normalized, version=GRID_CACHE_VERSION)

    cached = grid_intensity_cache.get(key)
    if cached is not None:
        log_event(logger, "factor.cache.hit", factor="grid", cache_key=key)
        return Resolved.primary(cached)

    if not settings.electricity_maps_api_key:
        return _grid_fallback(normalized, reason="not_configured")

    start = time.monotonic()
    try:
        with _http_client(settings.electricity_maps_timeout_seconds) as client:
            resp = client.get(
                f"{settings.electricity_maps_base_url.rstrip('/')}/carbon-intensity/latest",
                headers={"auth-token": settings.electricity_maps_api_key},
                params={"zone": normalized},
            )
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPError as e:
        return _grid_fallback(normalized, reason=f"upstream_error:{type(e).__name__}")
    except ValueError:
        return _grid_fallback(normalized, reason="invalid_json")

    try:
        grams = float((data or {}).get("carbonIntensity"))
    except (TypeError, ValueError, AttributeError):
        return _grid_fallback(normalized, reason="invalid_carbon_intensity")
    if not math.isfinite(grams) or grams <= 0:
        return _grid_fallback(normalized, reason="invalid_carbon_intensity")

    intensity = GridIntensity(
        zone=normalized,
        g_co2_per_kwh=grams,
        kg_co2_per_kwh=round(grams / 1000, 3),
        source="data",
        datetime=data.get("datetime") if isinstance(data.get("datetime"), str) else None,
    )
    grid_intensity_cache.put(key, intensity, ttl_seconds=settings.grid_cache_ttl_seconds)
    log_event(
        logger,
        "factor.fetched",
        factor="grid",
        zone=normalized,
        g_co2_per_kwh=grams,
        duration_ms=monotonic_ms(start),
    )
    return Resolved.primary(intensity)


def _grid_fallback(zone: str, *, reason: str) -> Resolved[GridIntensity]:
    log_event(logger, "factor.fallback", factor="grid", zone=zone, reason=reason)
    return Resolved.fallback(
        GridIntensity(
            zone=zone,
            g_co2_per_kwh=GRID_FALLBACK_KG_PER_KWH * 1000,
            kg_co2_per_kwh=GRID_FALLBACK_KG_PER_KWH,
            source="fallback",
        ),
        reason=reason,
    )


def clear_factor_caches() -> int:
    """Drop every cached factor and discovered activity id; returns how many entries went."""
    cleared = len(fuel_factor_cache) + len(grid_intensity_cache)
    fuel_factor_cache.clear()
    grid_intensity_cache.clear()
    _discovered_activity_ids.clear()
    log_event(logger, "factor.cache.cleared", entries=cleared)
    return cleared
