from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from trip_companion.core.db import db_session
from trip_companion.modules.expenses.schemas import ExpenseExtractIn, ExpenseExtractOut
from trip_companion.modules.expenses.service import extract_expense
from trip_companion.modules.identity.session import Identity
from trip_companion.modules.limits.rate_limit import rate_limited

router = APIRouter(tags=["expenses"])


@router.post("/expenses/extract", response_model=ExpenseExtractOut)
def extract(
    payload: ExpenseExtractIn,
    session: Session = Depends(db_session),
    identity: Identity = Depends(rate_limited("expense_extract", limit=10, window_ms=60_000)),
) -> ExpenseExtractOut:
    fields = extract_expense(
        session,
        identity=identity,
        storage_path=payload.storage_path,
        expense_type=payload.expense_type,
        trip_id=payload.trip_id,
        project_id=payload.project_id,
    )
    return ExpenseExtractOut.from_fields(fields)
