from __future__ import annotations

from fastapi import APIRouter, Depends

from reviewdesk.core.plans import Plan, PlanRegistry, get_plan_registry
from reviewdesk.schemas.billing import PlanResponse

router = APIRouter(prefix="/billing", tags=["billing"])


def plan_response(plan: Plan) -> PlanResponse:
    return PlanResponse(
        tier=plan.tier.value,
        workspace_limit=plan.workspace_limit,
        location_limit=plan.location_limit,
        monthly_generation_limit=plan.monthly_generation_limit,
        features=sorted(feature.value for feature in plan.features),
    )


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(
    registry: PlanRegistry = Depends(get_plan_registry),
) -> list[PlanResponse]:
    return [plan_response(plan) for plan in registry.plans()]
