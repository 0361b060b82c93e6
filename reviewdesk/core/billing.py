"""Maps billing collaborator events onto subscription transitions.

Stripe events arrive as ``{"type": ..., "data": {"object": ...}}`` and PayPal
events as ``{"event_type": ..., "resource": ...}``. Only the facts the state
machine needs are read from them: the workspace, the paid tier (from the price
or plan id) and the new period end.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.config import settings
from reviewdesk.core.subscriptions import InvalidTransition, SubscriptionStateMachine
from reviewdesk.models.enums import PlanTier
from reviewdesk.models.subscription import Subscription
from reviewdesk.models.workspace import Workspace

logger = logging.getLogger(__name__)

HANDLED_EVENTS = frozenset(
    {
        "checkout.session.completed",
        "invoice.paid",
        "customer.subscription.updated",
        "invoice.payment_failed",
        "customer.subscription.deleted",
    }
)
ACTIVE_PROVIDER_STATUSES = frozenset({"active", "trialing"})
PAST_DUE_PROVIDER_STATUSES = frozenset({"past_due", "unpaid"})
CANCELED_PROVIDER_STATUSES = frozenset({"canceled", "incomplete_expired"})

PAYPAL_SUBSCRIPTION_EVENT_PREFIX = "BILLING.SUBSCRIPTION."
PAYPAL_ACTIVE_STATUSES = frozenset({"ACTIVE"})
PAYPAL_PAST_DUE_STATUSES = frozenset({"SUSPENDED"})
PAYPAL_CANCELED_STATUSES = frozenset({"CANCELLED", "EXPIRED"})


@dataclass(slots=True)
class BillingEventOutcome:
    event_type: str
    workspace_id: UUID | None = None
    action: str | None = None
    updated: bool = False


def _event_object(payload: Mapping) -> Mapping:
    return (payload.get("data") or {}).get("object") or {}


def _first_line(data: Mapping) -> Mapping:
    lines = (data.get("lines") or {}).get("data") or []
    return lines[0] if lines else {}


def _first_item(data: Mapping) -> Mapping:
    items = (data.get("items") or {}).get("data") or []
    return items[0] if items else {}


def _metadata_sources(data: Mapping) -> list[Mapping]:
    return [
        data.get("metadata") or {},
        (data.get("subscription_details") or {}).get("metadata") or {},
        _first_line(data).get("metadata") or {},
    ]


def extract_workspace_id(data: Mapping) -> UUID | None:
    for metadata in _metadata_sources(data):
        raw = metadata.get("workspace_id") or metadata.get("workspaceId")
        if raw:
            try:
                return UUID(str(raw))
            except ValueError as exc:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Webhook payload has an invalid workspace identifier",
                ) from exc
    return None


def extract_subscription_ref(data: Mapping) -> str | None:
    if str(data.get("object") or "") == "subscription":
        return data.get("id")
    ref = data.get("subscription")
    return ref if isinstance(ref, str) else None


def map_price_to_tier(price_id: str | None) -> PlanTier | None:
    if not price_id:
        return None
    tier = settings.stripe_price_tiers().get(price_id)
    return PlanTier(tier) if tier else None


def extract_tier(data: Mapping) -> PlanTier | None:
    price_ids = [
        ((_first_item(data).get("price") or {}).get("id")),
        ((_first_line(data).get("price") or {}).get("id")),
    ]
    for metadata in _metadata_sources(data):
        price_ids.append(metadata.get("price_id"))

    for price_id in price_ids:
        tier = map_price_to_tier(price_id)
        if tier is not None:
            return tier

    for metadata in _metadata_sources(data):
        raw = str(metadata.get("plan_tier") or metadata.get("plan") or "").upper()
        if raw in {PlanTier.PRO.value, PlanTier.AGENCY.value}:
            return PlanTier(raw)
    return None


def _from_unix(value: object) -> datetime | None:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def extract_period_end(data: Mapping) -> datetime | None:
    candidates = [
        data.get("current_period_end"),
        (_first_line(data).get("period") or {}).get("end"),
        (data.get("metadata") or {}).get("current_period_end"),
    ]
    for candidate in candidates:
        try:
            period_end = _from_unix(candidate)
        except (TypeError, ValueError) as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Webhook payload has an invalid period end",
            ) from exc
        if period_end is not None:
            return period_end
    return None


class _SubscriptionEventHandler:
    def __init__(self, session: AsyncSession, machine: SubscriptionStateMachine) -> None:
        self.session = session
        self.machine = machine

    async def _known_workspace(self, workspace_id: UUID | None) -> UUID | None:
        if workspace_id is None:
            return None
        exists = await self.session.scalar(select(Workspace.id).where(Workspace.id == workspace_id))
        return workspace_id if exists else None

    async def _workspace_for_ref(self, ref: str | None) -> UUID | None:
        if not ref:
            return None
        return await self.session.scalar(
            select(Subscription.workspace_id).where(Subscription.external_provider_ref == ref)
        )

    async def _activate(
        self,
        outcome: BillingEventOutcome,
        tier: PlanTier | None,
        period_end: datetime | None,
        ref: str | None,
    ) -> BillingEventOutcome:
        if tier is None or period_end is None:
            logger.warning(
                "Billing event %s for workspace=%s is missing tier or period end",
                outcome.event_type,
                outcome.workspace_id,
            )
            return outcome

        if await self.machine.upgrade(outcome.workspace_id, tier, period_end, external_ref=ref) is None:
            return outcome
        outcome.action = "activated"
        outcome.updated = True
        return outcome

    async def _past_due(self, outcome: BillingEventOutcome) -> BillingEventOutcome:
        outcome.updated = await self.machine.mark_past_due(outcome.workspace_id)
        outcome.action = "past_due" if outcome.updated else None
        return outcome

    async def _cancel(self, outcome: BillingEventOutcome, ref: str | None) -> BillingEventOutcome:
        await self.machine.record_cancellation(
            outcome.workspace_id,
            details={"event_type": outcome.event_type, "external_ref": ref},
        )
        outcome.action = "cancellation_recorded"
        outcome.updated = True
        return outcome


class BillingEventProcessor(_SubscriptionEventHandler):
    """Stripe-shaped events."""

    async def _resolve_workspace(self, data: Mapping) -> UUID | None:
        workspace_id = extract_workspace_id(data)
        if workspace_id is None:
            workspace_id = await self._workspace_for_ref(extract_subscription_ref(data))
        return await self._known_workspace(workspace_id)

    async def apply(self, payload: Mapping) -> BillingEventOutcome:
        event_type = str(payload.get("type") or "unknown")
        outcome = BillingEventOutcome(event_type=event_type)
        if event_type not in HANDLED_EVENTS:
            return outcome

        data = _event_object(payload)
        workspace_id = await self._resolve_workspace(data)
        if workspace_id is None:
            logger.warning("Billing event %s does not reference a known workspace", event_type)
            return outcome
        outcome.workspace_id = workspace_id

        ref = extract_subscription_ref(data)
        if event_type == "checkout.session.completed":
            return await self._activate(outcome, extract_tier(data), extract_period_end(data), ref)

        if event_type == "invoice.paid":
            period_end = extract_period_end(data)
            if period_end is None:
                logger.warning("invoice.paid for workspace=%s has no period end", workspace_id)
                return outcome
            try:
                renewed = await self.machine.renew(
                    workspace_id, period_end, tier=extract_tier(data), external_ref=ref
                )
            except InvalidTransition:
                logger.warning("Ignoring renewal for workspace=%s without a paid tier", workspace_id)
                return outcome
            if renewed is not None:
                outcome.action = "renewed"
                outcome.updated = True
            return outcome

        if event_type == "customer.subscription.updated":
            provider_status = str(data.get("status") or "").lower()
            if provider_status in ACTIVE_PROVIDER_STATUSES:
                return await self._activate(outcome, extract_tier(data), extract_period_end(data), ref)
            if provider_status in PAST_DUE_PROVIDER_STATUSES:
                return await self._past_due(outcome)
            if provider_status in CANCELED_PROVIDER_STATUSES:
                return await self._cancel(outcome, ref)
            return outcome

        if event_type == "invoice.payment_failed":
            return await self._past_due(outcome)

        return await self._cancel(outcome, ref)


def map_paypal_plan_to_tier(plan_id: str | None) -> PlanTier | None:
    if not plan_id:
        return None
    tier = settings.paypal_plan_tiers().get(plan_id)
    return PlanTier(tier) if tier else None


def extract_paypal_workspace_id(resource: Mapping) -> UUID | None:
    raw = resource.get("custom_id")
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook payload has an invalid workspace identifier",
        ) from exc


def extract_paypal_period_end(resource: Mapping) -> datetime | None:
    raw = (resource.get("billing_info") or {}).get("next_billing_time")
    if not raw:
        return None
    try:
        period_end = datetime.fromisoformat(str(raw))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook payload has an invalid period end",
        ) from exc
    if period_end.tzinfo is None:
        return period_end.replace(tzinfo=timezone.utc)
    return period_end.astimezone(timezone.utc)


class PayPalEventProcessor(_SubscriptionEventHandler):
    """``BILLING.SUBSCRIPTION.*`` events, routed on the subscription resource status.

    The workspace comes from the stored provider reference (the resource id)
    and, for a subscription not linked yet, from ``custom_id``.
    """

    async def apply(self, payload: Mapping) -> BillingEventOutcome:
        event_type = str(payload.get("event_type") or "unknown")
        outcome = BillingEventOutcome(event_type=event_type)
        resource = payload.get("resource") or {}
        ref = resource.get("id")
        if not event_type.startswith(PAYPAL_SUBSCRIPTION_EVENT_PREFIX) or not ref:
            return outcome

        workspace_id = await self._workspace_for_ref(ref)
        if workspace_id is None:
            workspace_id = await self._known_workspace(extract_paypal_workspace_id(resource))
        if workspace_id is None:
            logger.warning("PayPal event %s for subscription %s has no known workspace", event_type, ref)
            return outcome
        outcome.workspace_id = workspace_id

        provider_status = str(resource.get("status") or "").upper()
        if provider_status in PAYPAL_ACTIVE_STATUSES:
            tier = map_paypal_plan_to_tier(resource.get("plan_id"))
            return await self._activate(outcome, tier, extract_paypal_period_end(resource), ref)
        if provider_status in PAYPAL_PAST_DUE_STATUSES:
            return await self._past_due(outcome)
        if provider_status in PAYPAL_CANCELED_STATUSES:
            return await self._cancel(outcome, ref)
        return outcome
