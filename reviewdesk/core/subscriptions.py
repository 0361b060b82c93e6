"""Per-workspace subscription lifecycle.

States::

    ACTIVE(FREE)                      resting state, no period end
    ACTIVE(PRO|AGENCY, period_end)    paid and in force
    PAST_DUE(PRO|AGENCY, period_end)  renewal failed, period not yet elapsed
    EXPIRED                           period elapsed, downgrade not yet applied

EXPIRED is never written. It is observed by comparing ``current_period_end``
with the clock, and the reconciliation sweep is the only writer that turns it
into ACTIVE(FREE). Upgrades and renewals come from the billing collaborator and
always write the paid tier, so a renewal that lands after a sweep restores the
paid state instead of being lost.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.events import PlanChangePublisher
from reviewdesk.core.repositories.subscriptions import SubscriptionRepository
from reviewdesk.models.base import utcnow
from reviewdesk.models.enums import PlanTier, SubscriptionEventType, SubscriptionStatus
from reviewdesk.models.subscription import Subscription

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class InvalidTransition(ValueError):
    pass


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class SubscriptionState:
    tier: PlanTier
    status: SubscriptionStatus
    period_end: datetime | None

    @property
    def is_paid(self) -> bool:
        return self.tier != PlanTier.FREE

    @property
    def effective_tier(self) -> PlanTier:
        if self.status == SubscriptionStatus.EXPIRED:
            return PlanTier.FREE
        return self.tier


FREE_STATE = SubscriptionState(tier=PlanTier.FREE, status=SubscriptionStatus.ACTIVE, period_end=None)


def state_at(subscription: Subscription | None, now: datetime) -> SubscriptionState:
    if subscription is None:
        return FREE_STATE

    tier = PlanTier(subscription.plan_tier)
    status = SubscriptionStatus(subscription.status)
    period_end = as_utc(subscription.current_period_end)
    if tier == PlanTier.FREE:
        return FREE_STATE
    if period_end is not None and period_end < now:
        status = SubscriptionStatus.EXPIRED
    return SubscriptionState(tier=tier, status=status, period_end=period_end)


class SubscriptionStateMachine:
    """Drives transitions for one session.

    ``create_free`` joins the caller's transaction (workspace creation commits
    it); every other transition commits its own unit of work.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        clock: Clock = utcnow,
        publisher: PlanChangePublisher | None = None,
    ) -> None:
        self.session = session
        self.clock = clock
        self.publisher = publisher

    def _repository(self, workspace_id: UUID) -> SubscriptionRepository:
        return SubscriptionRepository(self.session, workspace_id)

    async def current_state(self, workspace_id: UUID) -> SubscriptionState:
        subscription = await self._repository(workspace_id).get()
        if subscription is None:
            logger.warning("Workspace %s has no subscription row, treating it as FREE", workspace_id)
        return state_at(subscription, self.clock())

    async def effective_tier(self, workspace_id: UUID) -> PlanTier:
        return (await self.current_state(workspace_id)).effective_tier

    async def create_free(self, workspace_id: UUID) -> None:
        repository = self._repository(workspace_id)
        await repository.ensure_free()
        repository.record_event(SubscriptionEventType.CREATED, to_tier=PlanTier.FREE)

    async def upgrade(
        self,
        workspace_id: UUID,
        tier: PlanTier,
        period_end: datetime,
        external_ref: str | None = None,
    ) -> SubscriptionState | None:
        """Activate ``tier`` until ``period_end``; ``None`` when a later period is already stored."""
        if tier == PlanTier.FREE:
            raise InvalidTransition("Upgrade requires a paid tier")

        repository = self._repository(workspace_id)
        previous = state_at(await repository.get(), self.clock())
        await repository.ensure_free()
        if not await repository.set_paid_period(tier, period_end, external_ref):
            await self.session.commit()
            logger.info("Ignoring stale upgrade workspace=%s tier=%s period_end=%s", workspace_id, tier.value, period_end)
            return None
        event_type = (
            SubscriptionEventType.RENEWED
            if previous.is_paid and previous.tier == tier
            else SubscriptionEventType.UPGRADED
        )
        repository.record_event(
            event_type,
            from_tier=previous.effective_tier,
            to_tier=tier,
            period_end=period_end,
            details={"external_ref": external_ref} if external_ref else None,
        )
        await self.session.commit()
        logger.info("Subscription %s workspace=%s tier=%s period_end=%s", event_type.value, workspace_id, tier.value, period_end)
        await self._announce(workspace_id, tier, event_type.value.lower())
        return SubscriptionState(tier=tier, status=SubscriptionStatus.ACTIVE, period_end=as_utc(period_end))

    async def renew(
        self,
        workspace_id: UUID,
        new_period_end: datetime,
        tier: PlanTier | None = None,
        external_ref: str | None = None,
    ) -> SubscriptionState | None:
        repository = self._repository(workspace_id)
        current = await repository.get()
        if tier is None and current is not None and PlanTier(current.plan_tier) != PlanTier.FREE:
            tier = PlanTier(current.plan_tier)
        if tier is None:
            # The sweep may have downgraded the row moments before the renewal arrived.
            tier = await repository.latest_paid_tier()
        if tier is None:
            raise InvalidTransition(f"Workspace {workspace_id} has no paid tier to renew")

        await repository.ensure_free()
        if not await repository.set_paid_period(tier, new_period_end, external_ref):
            await self.session.commit()
            logger.info("Ignoring stale renewal workspace=%s period_end=%s", workspace_id, new_period_end)
            return None
        repository.record_event(
            SubscriptionEventType.RENEWED,
            from_tier=PlanTier(current.plan_tier) if current is not None else None,
            to_tier=tier,
            period_end=new_period_end,
        )
        await self.session.commit()
        logger.info("Subscription renewed workspace=%s tier=%s period_end=%s", workspace_id, tier.value, new_period_end)
        await self._announce(workspace_id, tier, "renewed")
        return SubscriptionState(tier=tier, status=SubscriptionStatus.ACTIVE, period_end=as_utc(new_period_end))

    async def mark_past_due(self, workspace_id: UUID) -> bool:
        repository = self._repository(workspace_id)
        if not await repository.mark_past_due():
            # Zero rows matched; close the transaction without expiring loaded instances.
            await self.session.commit()
            return False

        repository.record_event(SubscriptionEventType.PAST_DUE)
        await self.session.commit()
        logger.info("Subscription past due workspace=%s", workspace_id)
        return True

    async def record_cancellation(self, workspace_id: UUID, details: dict | None = None) -> None:
        # No state change: without a renewal the period lapses and the sweep downgrades it.
        repository = self._repository(workspace_id)
        repository.record_event(SubscriptionEventType.CANCELLATION_RECORDED, details=details)
        await self.session.commit()

    async def downgrade_if_expired(self, workspace_id: UUID, expected_tier: PlanTier | None = None) -> bool:
        """Apply EXPIRED -> FREE for one workspace. Idempotent; ``False`` when nothing changed."""
        repository = self._repository(workspace_id)
        now = self.clock()
        if not await repository.downgrade_if_expired(now):
            await self.session.commit()
            return False

        repository.record_event(
            SubscriptionEventType.DOWNGRADED,
            from_tier=expected_tier,
            to_tier=PlanTier.FREE,
            details={"reconciled_at": now.isoformat()},
        )
        await self.session.commit()
        logger.info("Subscription downgraded to FREE workspace=%s", workspace_id)
        await self._announce(workspace_id, PlanTier.FREE, "downgraded")
        return True

    async def _announce(self, workspace_id: UUID, tier: PlanTier, reason: str) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(workspace_id, tier, reason)
        except Exception:
            # The transition is already committed; a lost hint is only logged.
            logger.exception("Failed to publish plan change workspace=%s tier=%s", workspace_id, tier.value)


def get_clock() -> Clock:
    return utcnow
