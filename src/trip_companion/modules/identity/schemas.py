from __future__ import annotations

from pydantic import BaseModel, Field


class ProfileOut(BaseModel):
    user_id: str
    email: str | None
    base_address: str | None
    city: str | None
    country: str | None
    plan_tier: str


class ProfileUpdateIn(BaseModel):
    base_address: str | None = Field(default=None, max_length=300)
    city: str | None = Field(default=None, max_length=120)
    country: str | None = Field(default=None, max_length=120)


class AiQuotaOut(BaseModel):
    allowed: bool
    remaining: int
    limit: int
    used: int
    plan_tier: str
