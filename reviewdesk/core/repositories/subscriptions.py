from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.repositories.base import WorkspaceScopedRepository
from reviewdesk.models.base import utcnow
from reviewdesk.models.enums import PlanTier, SubscriptionEventType, SubscriptionStatus
from reviewdesk.models.subscription import Subscription, SubscriptionEvent

DOWNGRADABLE_STATUSES = (SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE)


class SubscriptionRepository(WorkspaceScopedRepository[Subscription]):
    """Row-level subscription writes.

    Every transition is a single UPDATE that writes all lifecycle columns it
    owns, so a transition never depends on what a previously loaded ORM object
    believed the row looked like.
    """

    def __init__(self, session: AsyncSession, workspace_id: UUID) -> None:
        super().__init__(session=session, model=Subscription, workspace_id=workspace_id)

    async def get(self) -> Subscription | None:
        result = await self.session.execute(
            self._scoped_select().execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_free(self) -> None:
        await self._insert_ignoring_conflicts(
            ["workspace_id"],
            plan_tier=PlanTier.FREE,
            status=SubscriptionStatus.ACTIVE,
            current_period_end=None,
        )

    async def set_paid_period(
        self,
        tier: PlanTier,
        period_end: datetime,
        external_ref: str | None = None,
    ) -> bool:
        values: dict[str, object] = {
            "plan_tier": tier,
            "status": SubscriptionStatus.ACTIVE,
            "current_period_end": period_end,
            "updated_at": utcnow(),
        }
        if external_ref is not None:
            values["external_provider_ref"] = external_ref
        # A same-tier write never moves the period end backwards.
        result = await self.session.execute(
            update(Subscription)
            .where(Subscription.workspace_id == self.workspace_id)
            .where(
                or_(
                    Subscription.plan_tier != tier,
                    Subscription.current_period_end.is_(None),
                    Subscription.current_period_end <= period_end,
                )
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def mark_past_due(self) -> bool:
        result = await self.session.execute(
            update(Subscription)
            .where(Subscription.workspace_id == self.workspace_id)
            .where(Subscription.plan_tier != PlanTier.FREE)
            .where(Subscription.status == SubscriptionStatus.ACTIVE)
            .values(status=SubscriptionStatus.PAST_DUE, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def downgrade_if_expired(self, now: datetime) -> bool:
        """Move an elapsed paid subscription to FREE; the period check runs inside the UPDATE."""
        result = await self.session.execute(
            update(Subscription)
            .where(Subscription.workspace_id == self.workspace_id)
            .where(Subscription.plan_tier != PlanTier.FREE)
            .where(Subscription.status.in_(DOWNGRADABLE_STATUSES))
            .where(Subscription.current_period_end.is_not(None))
            .where(Subscription.current_period_end < now)
            .values(
                plan_tier=PlanTier.FREE,
                status=SubscriptionStatus.ACTIVE,
                current_period_end=None,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def latest_paid_tier(self) -> PlanTier | None:
        from_tier = await self.session.scalar(
            select(SubscriptionEvent.from_tier)
            .where(SubscriptionEvent.workspace_id == self.workspace_id)
            .where(SubscriptionEvent.event_type == SubscriptionEventType.DOWNGRADED)
            .order_by(SubscriptionEvent.created_at.desc())
            .limit(1)
        )
        return PlanTier(from_tier) if from_tier else None

    def record_event(
        self,
        event_type: SubscriptionEventType,
        *,
        from_tier: PlanTier | None = None,
        to_tier: PlanTier | None = None,
        period_end: datetime | None = None,
        details: dict | None = None,
    ) -> SubscriptionEvent:
        event = SubscriptionEvent(
            workspace_id=self.workspace_id,
            event_type=event_type,
            from_tier=from_tier.value if from_tier else None,
            to_tier=to_tier.value if to_tier else None,
            period_end=period_end,
            details=details or {},
        )
        self.session.add(event)
        return event
