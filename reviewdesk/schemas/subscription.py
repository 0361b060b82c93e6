from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class UsageResponse(BaseModel):
    cycle_start: datetime
    used: int
    limit: int
    remaining: int


class SubscriptionResponse(BaseModel):
    workspace_id: UUID
    plan_tier: str
    effective_plan: str
    status: str
    current_period_end: datetime | None = None
    usage: UsageResponse


class GenerationResponse(BaseModel):
    granted: bool
    plan: str
    used: int
    limit: int
    remaining: int
