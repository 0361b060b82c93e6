from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from reviewdesk.agents.reconciliation_service import ReconciliationAgent
from reviewdesk.core import reconciliation
from reviewdesk.core.errors import ReconciliationUnauthorized
from reviewdesk.core.reconciliation import ReconciliationJob, find_expired_candidates, verify_cron_secret
from reviewdesk.core.subscriptions import FREE_STATE, SubscriptionState, SubscriptionStateMachine
from reviewdesk.models.enums import PlanTier, SubscriptionEventType, SubscriptionStatus
from reviewdesk.models.subscription import SubscriptionEvent

T = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
AFTER = T + timedelta(seconds=1)


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(session_factory, factory) -> None:  # noqa: ANN001
    expired_pro = await factory.workspace(await factory.user())
    expired_past_due = await factory.workspace(await factory.user())
    still_paid = await factory.workspace(await factory.user())
    free = await factory.workspace(await factory.user())
    await factory.set_plan(expired_pro.id, PlanTier.PRO, T)
    await factory.set_plan(expired_past_due.id, PlanTier.AGENCY, T - timedelta(days=3), SubscriptionStatus.PAST_DUE)
    await factory.set_plan(still_paid.id, PlanTier.PRO, T + timedelta(days=3))

    async with session_factory() as session:
        job = ReconciliationJob(session, clock=lambda: AFTER)
        assert await job.reconcile_expired() == 2
        assert await job.reconcile_expired() == 0

        machine = SubscriptionStateMachine(session, clock=lambda: AFTER)
        assert await machine.current_state(expired_pro.id) == FREE_STATE
        assert await machine.current_state(expired_past_due.id) == FREE_STATE
        assert (await machine.current_state(still_paid.id)).tier == PlanTier.PRO
        assert await machine.current_state(free.id) == FREE_STATE


@pytest.mark.asyncio
async def test_period_end_equal_to_now_is_not_expired(session_factory, factory) -> None:  # noqa: ANN001
    workspace = await factory.workspace(await factory.user())
    await factory.set_plan(workspace.id, PlanTier.PRO, T)

    async with session_factory() as session:
        assert await find_expired_candidates(session, T) == []
        assert await ReconciliationJob(session, clock=lambda: T).reconcile_expired() == 0


@pytest.mark.asyncio
async def test_renewal_landing_mid_sweep_wins(session_factory, factory, monkeypatch: pytest.MonkeyPatch) -> None:  # noqa: ANN001
    workspace = await factory.workspace(await factory.user())
    await factory.set_plan(workspace.id, PlanTier.PRO, T)
    select_candidates = reconciliation.find_expired_candidates

    async def _select_then_renew(session, now, limit=None):  # noqa: ANN001
        candidates = await select_candidates(session, now, limit)
        async with session_factory() as billing_session:
            await SubscriptionStateMachine(billing_session, clock=lambda: AFTER).renew(
                workspace.id, T + timedelta(days=30)
            )
        return candidates

    monkeypatch.setattr(reconciliation, "find_expired_candidates", _select_then_renew)

    async with session_factory() as session:
        assert await ReconciliationJob(session, clock=lambda: AFTER).reconcile_expired() == 0
        state = await SubscriptionStateMachine(session, clock=lambda: AFTER).current_state(workspace.id)

    assert state == SubscriptionState(PlanTier.PRO, SubscriptionStatus.ACTIVE, T + timedelta(days=30))


@pytest.mark.asyncio
async def test_renewal_after_sweep_restores_paid_state(session_factory, factory) -> None:  # noqa: ANN001
    workspace = await factory.workspace(await factory.user())
    await factory.set_plan(workspace.id, PlanTier.PRO, T)

    async with session_factory() as session:
        assert await ReconciliationJob(session, clock=lambda: AFTER).reconcile_expired() == 1

    async with session_factory() as session:
        machine = SubscriptionStateMachine(session, clock=lambda: AFTER)
        await machine.renew(workspace.id, T + timedelta(days=30))
        state = await machine.current_state(workspace.id)

    assert state == SubscriptionState(PlanTier.PRO, SubscriptionStatus.ACTIVE, T + timedelta(days=30))


@pytest.mark.asyncio
async def test_sweep_announces_downgrades(session_factory, factory) -> None:  # noqa: ANN001
    workspace = await factory.workspace(await factory.user())
    await factory.set_plan(workspace.id, PlanTier.AGENCY, T)
    publisher = AsyncMock()

    async with session_factory() as session:
        await ReconciliationJob(session, clock=lambda: AFTER, publisher=publisher).reconcile_expired()

    publisher.publish.assert_awaited_once_with(workspace.id, PlanTier.FREE, "downgraded")


def test_cron_secret_gate(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(reconciliation.settings, "cron_secret", "s3cret")

    with pytest.raises(ReconciliationUnauthorized) as exc:
        verify_cron_secret("wrong")
    assert exc.value.status_code == 401
    assert exc.value.detail == "Unauthorized"

    with pytest.raises(ReconciliationUnauthorized):
        verify_cron_secret(None)

    verify_cron_secret("s3cret")


def test_cron_secret_unset_leaves_trigger_open(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(reconciliation.settings, "cron_secret", "")

    verify_cron_secret(None)
    verify_cron_secret("anything")


@pytest.mark.asyncio
async def test_agent_run_once_records_metrics(session_factory, factory) -> None:  # noqa: ANN001
    workspace = await factory.workspace(await factory.user())
    await factory.set_plan(workspace.id, PlanTier.PRO, T)
    agent = ReconciliationAgent(session_factory, clock=lambda: AFTER, publisher=AsyncMock())

    assert await agent.run_once() == 1
    assert await agent.run_once() == 0

    assert agent.health.metrics == {
        "sweeps_completed": 2,
        "subscriptions_downgraded": 1,
        "last_downgraded": 0,
    }


@pytest.mark.asyncio
async def test_concurrent_sweeps_downgrade_each_row_once(session_factory, factory) -> None:  # noqa: ANN001
    expired = [await factory.workspace(await factory.user()) for _ in range(4)]
    for workspace in expired:
        await factory.set_plan(workspace.id, PlanTier.PRO, T)

    async def _sweep() -> int:
        async with session_factory() as session:
            return await ReconciliationJob(session, clock=lambda: AFTER).reconcile_expired()

    first, second = await asyncio.gather(_sweep(), _sweep())

    assert first + second == 4
    async with session_factory() as session:
        downgrades = await session.scalar(
            select(func.count())
            .select_from(SubscriptionEvent)
            .where(SubscriptionEvent.event_type == SubscriptionEventType.DOWNGRADED)
        )
        assert downgrades == 4
        machine = SubscriptionStateMachine(session, clock=lambda: AFTER)
        for workspace in expired:
            assert await machine.current_state(workspace.id) == FREE_STATE
