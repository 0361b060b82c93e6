from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.db import get_db_session
from reviewdesk.core.events import PlanChangePublisher, get_plan_publisher
from reviewdesk.core.reconciliation import ReconciliationJob, verify_cron_secret
from reviewdesk.core.subscriptions import Clock, get_clock
from reviewdesk.schemas.billing import ReconcileResponse

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_subscriptions(
    cron_secret: str | None = Header(default=None, alias="x-cron-secret"),
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    publisher: PlanChangePublisher = Depends(get_plan_publisher),
) -> ReconcileResponse:
    verify_cron_secret(cron_secret)
    downgraded = await ReconciliationJob(session, clock=clock, publisher=publisher).reconcile_expired()
    return ReconcileResponse(downgraded=downgraded)
