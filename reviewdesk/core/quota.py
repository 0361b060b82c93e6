from __future__ import annotations

import calendar
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.access import WorkspaceAccess, require_any_member, require_workspace_role
from reviewdesk.core.db import get_db_session
from reviewdesk.core.errors import FeatureNotAvailable, PlanLimitReached, QuotaExceeded
from reviewdesk.core.plans import Feature, Plan, PlanRegistry, get_plan_registry
from reviewdesk.core.repositories.usage import UsageCounterRepository
from reviewdesk.core.subscriptions import Clock, SubscriptionState, SubscriptionStateMachine, get_clock
from reviewdesk.models.base import utcnow
from reviewdesk.models.enums import PlanTier, Role


def month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def shift_months(value: datetime, months: int) -> datetime:
    index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def current_cycle_start(state: SubscriptionState, now: datetime) -> datetime:
    """Start of the quota cycle in force at ``now``.

    Paid plans count from one month before the billing period end; FREE (and an
    elapsed paid plan) count per calendar month.
    """
    if state.effective_tier == PlanTier.FREE or state.period_end is None:
        return month_start(now)

    start = shift_months(state.period_end, -1)
    while start > now:
        start = shift_months(start, -1)
    return start.replace(microsecond=0)


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    granted: bool
    plan: PlanTier
    limit: int
    used: int
    cycle_start: datetime

    @property
    def remaining(self) -> int:
        return max(self.limit - self.used, 0)


class QuotaGate:
    def __init__(self, session: AsyncSession, registry: PlanRegistry, *, clock: Clock = utcnow) -> None:
        self.session = session
        self.registry = registry
        self.clock = clock

    async def effective_plan(self, workspace_id: UUID) -> tuple[Plan, SubscriptionState]:
        # Read fresh on every call: a downgrade must shrink the allowance immediately.
        state = await SubscriptionStateMachine(self.session, clock=self.clock).current_state(workspace_id)
        return self.registry.plan_for(state.effective_tier), state

    async def usage(self, workspace_id: UUID, state: SubscriptionState | None = None) -> QuotaDecision:
        """Counter for the cycle in force; pass ``state`` to report against an earlier read."""
        if state is None:
            plan, state = await self.effective_plan(workspace_id)
        else:
            plan = self.registry.plan_for(state.effective_tier)
        cycle_start = current_cycle_start(state, self.clock())
        counter = await UsageCounterRepository(self.session, workspace_id).get_for_cycle(cycle_start)
        return QuotaDecision(
            granted=True,
            plan=plan.tier,
            limit=plan.monthly_generation_limit,
            used=counter.generations_used if counter else 0,
            cycle_start=cycle_start,
        )

    async def try_consume(self, workspace_id: UUID, amount: int = 1) -> QuotaDecision:
        if amount < 1:
            raise ValueError("amount must be a positive integer")

        plan, state = await self.effective_plan(workspace_id)
        cycle_start = current_cycle_start(state, self.clock())
        repository = UsageCounterRepository(self.session, workspace_id)

        await repository.ensure_cycle(cycle_start)
        granted = await repository.increment_within_limit(
            cycle_start, amount, plan.monthly_generation_limit
        )
        await self.session.commit()

        counter = await repository.get_for_cycle(cycle_start)
        return QuotaDecision(
            granted=granted,
            plan=plan.tier,
            limit=plan.monthly_generation_limit,
            used=counter.generations_used if counter else 0,
            cycle_start=cycle_start,
        )

    async def require_feature(self, workspace_id: UUID, feature: Feature) -> Plan:
        plan, _ = await self.effective_plan(workspace_id)
        if not plan.has_feature(feature):
            minimum = self.registry.minimum_plan_for(feature)
            raise FeatureNotAvailable(
                feature=feature.value,
                plan=plan.tier.value,
                required_plan=minimum.tier.value if minimum else None,
            )
        return plan


def assert_capacity(plan: Plan, resource: str, current: int, extra: int = 1) -> None:
    limit = plan.limit_for(resource)
    if limit is not None and current + extra > limit:
        raise PlanLimitReached(resource=resource, plan=plan.tier.value, limit=limit)


async def get_quota_gate(
    session: AsyncSession = Depends(get_db_session),
    registry: PlanRegistry = Depends(get_plan_registry),
    clock: Clock = Depends(get_clock),
) -> QuotaGate:
    return QuotaGate(session, registry, clock=clock)


def require_plan_feature(feature: Feature, *roles: Role) -> Callable[..., Awaitable[WorkspaceAccess]]:
    access_dependency = require_workspace_role(*roles)

    async def _dependency(
        access: WorkspaceAccess = Depends(access_dependency),
        gate: QuotaGate = Depends(get_quota_gate),
    ) -> WorkspaceAccess:
        await gate.require_feature(access.workspace_id, feature)
        return access

    return _dependency


async def consume_generation(
    access: WorkspaceAccess = Depends(require_any_member),
    gate: QuotaGate = Depends(get_quota_gate),
) -> QuotaDecision:
    decision = await gate.try_consume(access.workspace_id)
    if not decision.granted:
        raise QuotaExceeded(plan=decision.plan.value, limit=decision.limit, used=decision.used)
    return decision
