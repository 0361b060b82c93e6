from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class PlanResponse(BaseModel):
    tier: str
    workspace_limit: int | None
    location_limit: int | None
    monthly_generation_limit: int
    features: list[str]


class EntitlementResponse(BaseModel):
    workspace_id: UUID
    plan: PlanResponse


class BillingWebhookResponse(BaseModel):
    received: bool
    event_type: str
    workspace_id: UUID | None = None
    action: str | None = None
    updated: bool


class ReconcileResponse(BaseModel):
    downgraded: int
