from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.api.routes.billing import plan_response
from reviewdesk.core.access import MANAGER_ROLES, WorkspaceAccess, require_any_member
from reviewdesk.core.db import get_db_session
from reviewdesk.core.identity import Principal, require_principal
from reviewdesk.core.plans import Feature, PlanRegistry, get_plan_registry
from reviewdesk.core.quota import QuotaDecision, QuotaGate, consume_generation, get_quota_gate, require_plan_feature
from reviewdesk.core.repositories.memberships import MembershipDirectory
from reviewdesk.core.subscriptions import Clock, get_clock
from reviewdesk.core.workspaces import create_workspace
from reviewdesk.schemas.billing import EntitlementResponse
from reviewdesk.schemas.subscription import GenerationResponse, SubscriptionResponse, UsageResponse
from reviewdesk.schemas.workspace import (
    DefaultWorkspaceResponse,
    GuardResponse,
    WorkspaceCreateRequest,
    WorkspaceSummary,
)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.get("", response_model=list[WorkspaceSummary])
async def list_workspaces(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_db_session),
) -> list[WorkspaceSummary]:
    memberships = await MembershipDirectory(session).memberships_for(principal.user_id)
    return [
        WorkspaceSummary(
            workspace_id=membership.workspace_id,
            workspace_name=membership.workspace.name,
            role=membership.role.value,
        )
        for membership in memberships
    ]


@router.get("/default", response_model=DefaultWorkspaceResponse)
async def default_workspace(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_db_session),
) -> DefaultWorkspaceResponse:
    workspace_id = await MembershipDirectory(session).default_workspace_id(principal.user_id)
    return DefaultWorkspaceResponse(workspace_id=workspace_id)


@router.post("", response_model=WorkspaceSummary, status_code=status.HTTP_201_CREATED)
async def create_workspace_route(
    payload: WorkspaceCreateRequest,
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(get_db_session),
    registry: PlanRegistry = Depends(get_plan_registry),
    clock: Clock = Depends(get_clock),
) -> WorkspaceSummary:
    workspace, membership = await create_workspace(session, principal, payload.name.strip(), registry, clock)
    return WorkspaceSummary(
        workspace_id=workspace.id,
        workspace_name=workspace.name,
        role=membership.role.value,
    )


@router.get("/{workspace_id}/subscription", response_model=SubscriptionResponse)
async def get_subscription(
    access: WorkspaceAccess = Depends(require_any_member),
    gate: QuotaGate = Depends(get_quota_gate),
) -> SubscriptionResponse:
    _, state = await gate.effective_plan(access.workspace_id)
    usage = await gate.usage(access.workspace_id, state)
    return SubscriptionResponse(
        workspace_id=access.workspace_id,
        plan_tier=state.tier.value,
        effective_plan=state.effective_tier.value,
        status=state.status.value,
        current_period_end=state.period_end,
        usage=UsageResponse(
            cycle_start=usage.cycle_start,
            used=usage.used,
            limit=usage.limit,
            remaining=usage.remaining,
        ),
    )


@router.get("/{workspace_id}/entitlements", response_model=EntitlementResponse)
async def get_entitlements(
    access: WorkspaceAccess = Depends(require_any_member),
    gate: QuotaGate = Depends(get_quota_gate),
) -> EntitlementResponse:
    plan, _ = await gate.effective_plan(access.workspace_id)
    return EntitlementResponse(workspace_id=access.workspace_id, plan=plan_response(plan))


@router.post("/{workspace_id}/generations", response_model=GenerationResponse)
async def consume_generation_route(
    decision: QuotaDecision = Depends(consume_generation),
) -> GenerationResponse:
    return GenerationResponse(
        granted=decision.granted,
        plan=decision.plan.value,
        used=decision.used,
        limit=decision.limit,
        remaining=decision.remaining,
    )


@router.post("/{workspace_id}/approvals/guard", response_model=GuardResponse)
async def approval_workflow_guard(
    _: WorkspaceAccess = Depends(require_plan_feature(Feature.APPROVAL_WORKFLOW, *MANAGER_ROLES)),
) -> GuardResponse:
    return GuardResponse(allowed=True)


@router.post("/{workspace_id}/brand-voice/guard", response_model=GuardResponse)
async def brand_voice_guard(
    _: WorkspaceAccess = Depends(require_plan_feature(Feature.BRAND_VOICE, *MANAGER_ROLES)),
) -> GuardResponse:
    return GuardResponse(allowed=True)
