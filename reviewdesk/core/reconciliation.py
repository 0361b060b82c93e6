from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.config import settings
from reviewdesk.core.errors import ReconciliationUnauthorized
from reviewdesk.core.events import PlanChangePublisher
from reviewdesk.core.repositories.subscriptions import DOWNGRADABLE_STATUSES
from reviewdesk.core.subscriptions import Clock, SubscriptionStateMachine
from reviewdesk.models.base import utcnow
from reviewdesk.models.enums import PlanTier
from reviewdesk.models.subscription import Subscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExpiredCandidate:
    workspace_id: UUID
    tier: PlanTier


async def find_expired_candidates(
    session: AsyncSession,
    now: datetime,
    limit: int | None = None,
) -> list[ExpiredCandidate]:
    stmt = (
        select(Subscription.workspace_id, Subscription.plan_tier)
        .where(Subscription.status.in_(DOWNGRADABLE_STATUSES))
        .where(Subscription.plan_tier != PlanTier.FREE)
        .where(Subscription.current_period_end.is_not(None))
        .where(Subscription.current_period_end < now)
        .order_by(Subscription.current_period_end)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = (await session.execute(stmt)).all()
    return [ExpiredCandidate(workspace_id=row.workspace_id, tier=PlanTier(row.plan_tier)) for row in rows]


class ReconciliationJob:
    """Sweep that downgrades elapsed paid subscriptions to FREE.

    Candidates are only a hint. Each row is downgraded by its own conditional
    UPDATE that re-reads the clock and re-checks the period end, and is
    committed on its own, so a renewal that lands mid-sweep wins and an
    interrupted sweep keeps whatever it already committed.
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
        self.machine = SubscriptionStateMachine(session, clock=clock, publisher=publisher)

    async def reconcile_expired(self) -> int:
        candidates = await find_expired_candidates(self.session, self.clock())
        downgraded = 0
        for candidate in candidates:
            if await self.machine.downgrade_if_expired(candidate.workspace_id, expected_tier=candidate.tier):
                downgraded += 1
            else:
                logger.info("Skipped downgrade for workspace=%s, subscription changed since selection", candidate.workspace_id)

        logger.info("Reconciliation sweep finished candidates=%s downgraded=%s", len(candidates), downgraded)
        return downgraded


def verify_cron_secret(provided: str | None) -> None:
    expected = settings.cron_secret
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        raise ReconciliationUnauthorized()
