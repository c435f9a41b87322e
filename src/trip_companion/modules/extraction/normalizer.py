"""
Typed records from raw AI output.

AI responses are untrusted JSON-ish text. Parsing is two-stage (strict, then
best-effort substring extraction) and everything past this module works with
``ExpenseFields`` / ``CallsheetFields`` only.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from trip_companion.core.errors import ErrorKind, PipelineError

DEFAULT_CURRENCY = "EUR"
PRICE_PER_UNIT_DECIMALS = 3

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")
_NUMBER_CHARS_RE = re.compile(r"[^\d,.\-]")
_LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class ExpenseFields:
    amount: float | None
    currency: str
    vendor_name: str | None
    date: str | None
    quantity: float | None = None
    unit: str | None = None
    price_per_unit: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "amount": self.amount,
            "currency": self.currency,
            "vendorName": self.vendor_name,
            "date": self.date,
            "quantity": self.quantity,
            "unit": self.unit,
            "pricePerUnit": self.price_per_unit,
        }


@dataclass(frozen=True)
class CallsheetFields:
    date: str
    project_name: str
    production_companies: list[str] = field(default_factory=list)
    locations: list[str] = field(default_factory=list)

    @property
    def producer(self) -> str | None:
        return self.production_companies[0] if self.production_companies else None


def parse_json_object(text: str | None) -> dict[str, Any]:
    content = (text or "").strip()
    if not content:
        raise PipelineError(ErrorKind.PARSE_FAILURE, "Empty response from document service")

    candidates = [content, _FENCE_RE.sub("", content).strip()]
    start, end = content.find("{"), content.rfind("}")
    if start != -1 and end > start:
        candidates.append(content[start : end + 1])

    for candidate in candidates:
        try:
            obj = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(obj, dict):
            return obj
    raise PipelineError(
        ErrorKind.PARSE_FAILURE, "Failed to parse document service response as JSON"
    )


def normalize_number(value: Any) -> float | None:
    """
    Lenient amount parsing: ``"12,50"`` -> 12.5, ``"€ 8.90"`` -> 8.9.

    Only the first comma becomes a decimal point and the longest leading number
    is used, so mixed thousands/decimal separators (``"1.234,56"``) are read as
    ``1.234``. Non-finite and non-positive values are absent, never zero.
    """
    if value is None or isinstance(value, bool):
        return None
    cleaned = _NUMBER_CHARS_RE.sub("", str(value)).replace(",", ".", 1)
    m = _LEADING_FLOAT_RE.match(cleaned)
    if not m:
        return None
    number = float(m.group(0))
    if not math.isfinite(number) or number <= 0:
        return None
    return number


def normalize_currency(value: Any, default: str = DEFAULT_CURRENCY) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip().upper()
    return default


def normalize_date(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not _ISO_DATE_RE.match(candidate):
        return None
    try:
        return date.fromisoformat(candidate).isoformat()
    except ValueError:
        return None


def _clean_text(value: Any, *, max_len: int) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    return text[:max_len]


def normalize_expense(raw: dict[str, Any], expense_type: str) -> ExpenseFields:
    amount = normalize_number(raw.get("amount"))
    base = {
        "amount": amount,
        "currency": normalize_currency(raw.get("currency")),
        "vendor_name": _clean_text(raw.get("vendorName"), max_len=200),
        "date": normalize_date(raw.get("date")),
    }
    if expense_type != "fuel":
        return ExpenseFields(**base)

    quantity = normalize_number(raw.get("quantity"))
    price_per_unit = normalize_number(raw.get("pricePerUnit"))
    if amount and quantity and not price_per_unit:
        price_per_unit = round(amount / quantity, PRICE_PER_UNIT_DECIMALS)
    unit = _clean_text(raw.get("unit"), max_len=20) or ("L" if quantity else None)
    return ExpenseFields(**base, quantity=quantity, unit=unit, price_per_unit=price_per_unit)


def normalize_callsheet(raw: dict[str, Any]) -> CallsheetFields:
    shoot_date = normalize_date(raw.get("date"))
    if shoot_date is None:
        raise PipelineError(ErrorKind.PARSE_FAILURE, "Call sheet date missing or not YYYY-MM-DD")

    project_name = raw.get("projectName")
    project_name = project_name.strip() if isinstance(project_name, str) else ""
    if not project_name or len(project_name) > 160:
        raise PipelineError(ErrorKind.PARSE_FAILURE, "Call sheet project name missing or too long")

    companies_raw = raw.get("productionCompanies") or []
    if not isinstance(companies_raw, list):
        raise PipelineError(ErrorKind.PARSE_FAILURE, "productionCompanies must be a list")
    companies = [c for c in (_clean_text(v, max_len=160) for v in companies_raw) if c]

    locations_raw = raw.get("locations") or []
    if not isinstance(locations_raw, list):
        raise PipelineError(ErrorKind.PARSE_FAILURE, "locations must be a list")
    locations: list[str] = []
    for value in locations_raw:
        text = value.strip() if isinstance(value, str) else ""
        if not text:
            continue
        if len(text) > 300:
            raise PipelineError(ErrorKind.PARSE_FAILURE, "Call sheet location is too long")
        locations.append(text)
    if not locations:
        raise PipelineError(ErrorKind.PARSE_FAILURE, "Call sheet has no filming locations")

    return CallsheetFields(
        date=shoot_date,
        project_name=project_name,
        production_companies=companies,
        locations=locations,
    )
