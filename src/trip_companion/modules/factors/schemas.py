from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trip_companion.core.resolved import Resolved
from trip_companion.modules.factors.service import FuelFactor, GridIntensity


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FuelFactorOut(_CamelModel):
    fuel_type: str
    kg_co2e_per_liter: float = Field(alias="kgCo2ePerLiter")
    source: str
    fallback: bool
    provider: str | None = None
    activity_id: str | None = None
    data_version: str | None = None
    region: str | None = None
    year: int | None = None

    @classmethod
    def from_resolved(cls, resolved: Resolved[FuelFactor]) -> FuelFactorOut:
        f = resolved.value
        return cls(
            fuel_type=f.fuel_type,
            kg_co2e_per_liter=f.kg_co2e_per_liter,
            source=f.source,
            fallback=resolved.used_fallback,
            provider=f.provider,
            activity_id=f.activity_id,
            data_version=f.data_version,
            region=f.region,
            year=f.year,
        )


class GridIntensityOut(_CamelModel):
    zone: str
    g_co2_per_kwh: float
    kg_co2_per_kwh: float
    source: str
    fallback: bool
    datetime: str | None = None

    @classmethod
    def from_resolved(cls, resolved: Resolved[GridIntensity]) -> GridIntensityOut:
        g = resolved.value
        return cls(
            zone=g.zone,
            g_co2_per_kwh=g.g_co2_per_kwh,
            kg_co2_per_kwh=g.kg_co2_per_kwh,
            source=g.source,
            fallback=resolved.used_fallback,
            datetime=g.datetime,
        )


class FactorCacheClearedOut(BaseModel):
    cleared: int
