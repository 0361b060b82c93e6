from __future__ import annotations

import json
from datetime import datetime, timezone
from uuid import UUID

import redis.asyncio as redis

from reviewdesk.core.config import settings
from reviewdesk.models.enums import PlanTier


class PlanChangePublisher:
    """Announces committed plan transitions on ``billing:workspace_plan:<id>``.

    Subscribers use these messages only as hints to refresh; the store stays the
    source of truth for every access and quota decision.
    """

    async def publish(self, workspace_id: UUID, tier: PlanTier, reason: str) -> None:
        redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        try:
            await redis_client.publish(
                f"{settings.plan_events_channel_prefix}{workspace_id}",
                json.dumps(
                    {
                        "workspace_id": str(workspace_id),
                        "plan_tier": tier.value,
                        "reason": reason,
                        "occurred_at": datetime.now(timezone.utc).isoformat(),
                    }
                ),
            )
        finally:
            await redis_client.aclose()


def get_plan_publisher() -> PlanChangePublisher:
    return PlanChangePublisher()
