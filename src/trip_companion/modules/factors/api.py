from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from trip_companion.modules.factors.schemas import (
    FactorCacheClearedOut,
    FuelFactorOut,
    GridIntensityOut,
)
from trip_companion.modules.factors.service import (
    clear_factor_caches,
    get_fuel_factor,
    get_grid_intensity,
)
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.rate_limit import rate_limited

router = APIRouter(tags=["factors"])


@router.get("/fuel-factor", response_model=FuelFactorOut)
def fuel_factor(
    fuel_type: str | None = Query(default=None, alias="fuelType"),
    _: Identity = Depends(rate_limited("fuel_factor", limit=60, window_ms=60_000)),
) -> FuelFactorOut:
    return FuelFactorOut.from_resolved(get_fuel_factor(fuel_type or ""))


@router.get("/grid-intensity", response_model=GridIntensityOut)
def grid_intensity(
    zone: str | None = None,
    _: Identity = Depends(rate_limited("grid_intensity", limit=60, window_ms=60_000)),
) -> GridIntensityOut:
    return GridIntensityOut.from_resolved(get_grid_intensity(zone))


@router.post("/factors/refresh", response_model=FactorCacheClearedOut)
def refresh_factors(
    _: Identity = Depends(rate_limited("factor_refresh", limit=5, window_ms=60_000)),
) -> FactorCacheClearedOut:
    return FactorCacheClearedOut(cleared=clear_factor_caches())
