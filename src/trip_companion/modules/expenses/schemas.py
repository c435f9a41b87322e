from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from trip_companion.modules.extraction.normalizer import ExpenseFields


class ExpenseExtractIn(BaseModel):
    # Loosely typed so bad input gets a 400 from the service, not a 422 here.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    storage_path: str | None = None
    expense_type: str | None = None
    trip_id: str | None = None
    project_id: str | None = None


class ExpenseExtractOut(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    amount: float | None
    currency: str
    vendor_name: str | None = None
    date: str | None = None
    quantity: float | None = None
    unit: str | None = None
    price_per_unit: float | None = None

    @classmethod
    def from_fields(cls, fields: ExpenseFields) -> ExpenseExtractOut:
        return cls(
            amount=fields.amount,
            currency=fields.currency,
            vendor_name=fields.vendor_name,
            date=fields.date,
            quantity=fields.quantity,
            unit=fields.unit,
            price_per_unit=fields.price_per_unit,
        )
