from __future__ import annotations

from fastapi import APIRouter

from trip_companion.modules.callsheets.api import router as callsheets_router
from trip_companion.modules.expenses.api import router as expenses_router
from trip_companion.modules.factors.api import router as factors_router
from trip_companion.modules.identity.api import router as identity_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(factors_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(callsheets_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
