from __future__ import annotations

import enum
from dataclasses import dataclass


class PlanTier(str, enum.Enum):
    BASIC = "basic"
    PRO = "pro"


class AiKind(str, enum.Enum):
    CALLSHEET = "callsheet"
    EXPENSE = "expense"


@dataclass(frozen=True)
class PlanLimits:
    ai_jobs_per_month: int
    max_stops_per_trip: int


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.BASIC: PlanLimits(ai_jobs_per_month=5, max_stops_per_trip=10),
    # Directions API caps waypoints at 25 on the advanced SKU.
    PlanTier.PRO: PlanLimits(ai_jobs_per_month=60, max_stops_per_trip=25),
}


def get_plan_limits(tier: str | None) -> PlanLimits:
    if tier == PlanTier.PRO.value:
        return PLAN_LIMITS[PlanTier.PRO]
    return PLAN_LIMITS[PlanTier.BASIC]
