from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field

from trip_companion.modules.callsheets.models import JobStatus


class CallsheetJobOut(BaseModel):
    id: uuid.UUID
    status: JobStatus
    error: str | None
    filename: str
    created_at: datetime


class CallsheetLocationOut(BaseModel):
    position: int
    address_raw: str
    formatted_address: str | None
    place_id: str | None
    lat: float | None
    lng: float | None


class CallsheetResultOut(BaseModel):
    job: CallsheetJobOut
    date: str | None
    project_name: str | None
    producer: str | None
    production_companies: list[str]
    locations: list[CallsheetLocationOut]


class ReviewLocationOut(BaseModel):
    raw_text: str
    address: str
    used_fallback: bool


class CallsheetReviewOut(BaseModel):
    job_id: uuid.UUID
    date: str | None
    project_name: str | None
    producer: str | None
    locations: list[ReviewLocationOut]
    distance_km: float | None
    fallbacks: list[str]


class CallsheetConfirmIn(BaseModel):
    trip_date: date
    project_name: str = Field(min_length=1, max_length=160)
    producer: str | None = Field(default=None, max_length=200)
    locations: list[str] = Field(min_length=1, max_length=25)
    distance_km: float | None = None
    purpose: str | None = Field(default=None, max_length=300)


class TripOut(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID | None
    trip_date: date
    purpose: str | None
    producer: str | None
    locations: list[str]
    distance_km: float | None
    source: str
    callsheet_job_id: uuid.UUID | None
