from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.errors import Unauthenticated
from reviewdesk.core.identity import Principal
from reviewdesk.core.plans import TIER_ORDER, Plan, PlanRegistry
from reviewdesk.core.quota import assert_capacity
from reviewdesk.core.repositories.memberships import MembershipDirectory
from reviewdesk.core.subscriptions import Clock, SubscriptionStateMachine, state_at
from reviewdesk.models.base import utcnow
from reviewdesk.models.enums import PlanTier, Role
from reviewdesk.models.membership import WorkspaceMembership
from reviewdesk.models.subscription import Subscription
from reviewdesk.models.user import User
from reviewdesk.models.workspace import Workspace

logger = logging.getLogger(__name__)


async def highest_plan_for(
    session: AsyncSession,
    principal: Principal,
    registry: PlanRegistry,
    clock: Clock = utcnow,
) -> Plan:
    """Best effective plan among every workspace the user belongs to, FREE when none."""
    subscriptions = (
        await session.scalars(
            select(Subscription)
            .join(WorkspaceMembership, WorkspaceMembership.workspace_id == Subscription.workspace_id)
            .where(WorkspaceMembership.user_id == principal.user_id)
            .execution_options(populate_existing=True)
        )
    ).all()

    now = clock()
    best = PlanTier.FREE
    for subscription in subscriptions:
        tier = state_at(subscription, now).effective_tier
        if TIER_ORDER.index(tier) > TIER_ORDER.index(best):
            best = tier
    return registry.plan_for(best)


async def lock_user(session: AsyncSession, principal: Principal, clock: Clock = utcnow) -> None:
    """Hold the user's row lock until the transaction ends.

    Written as an UPDATE because SQLite drops ``FOR UPDATE`` but still queues writers.
    """
    result = await session.execute(
        update(User)
        .where(User.id == principal.user_id)
        .values(updated_at=clock())
        .execution_options(synchronize_session=False)
    )
    if (result.rowcount or 0) != 1:
        raise Unauthenticated()


async def create_workspace(
    session: AsyncSession,
    principal: Principal,
    name: str,
    registry: PlanRegistry,
    clock: Clock = utcnow,
) -> tuple[Workspace, WorkspaceMembership]:
    # Concurrent creations for one user queue here, so each counts the others' commits.
    await lock_user(session, principal, clock)
    plan = await highest_plan_for(session, principal, registry, clock)
    current = await MembershipDirectory(session).count_for(principal.user_id)
    assert_capacity(plan, "workspaces", current)

    workspace = Workspace(name=name)
    session.add(workspace)
    await session.flush()

    membership = WorkspaceMembership(
        user_id=principal.user_id,
        workspace_id=workspace.id,
        role=Role.OWNER,
        joined_at=clock(),
    )
    session.add(membership)
    await SubscriptionStateMachine(session, clock=clock).create_free(workspace.id)
    await session.commit()

    logger.info("Workspace created workspace=%s owner=%s", workspace.id, principal.user_id)
    return workspace, membership
