from __future__ import annotations

import hmac
import json

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.billing import BillingEventOutcome, BillingEventProcessor, PayPalEventProcessor
from reviewdesk.core.config import settings
from reviewdesk.core.db import get_db_session
from reviewdesk.core.events import PlanChangePublisher, get_plan_publisher
from reviewdesk.core.subscriptions import Clock, SubscriptionStateMachine, get_clock
from reviewdesk.schemas.billing import BillingWebhookResponse

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _parse_event(raw_body: bytes) -> dict:
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )
    return payload


def _verify_secret(provided: str | None) -> None:
    expected = settings.billing_webhook_secret
    if expected and not hmac.compare_digest((provided or "").encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid billing webhook secret",
        )


def _response(outcome: BillingEventOutcome) -> BillingWebhookResponse:
    return BillingWebhookResponse(
        received=True,
        event_type=outcome.event_type,
        workspace_id=outcome.workspace_id,
        action=outcome.action,
        updated=outcome.updated,
    )


@router.post("/billing", response_model=BillingWebhookResponse)
async def billing_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    publisher: PlanChangePublisher = Depends(get_plan_publisher),
    webhook_secret: str | None = Header(default=None, alias="X-Billing-Webhook-Secret"),
) -> BillingWebhookResponse:
    _verify_secret(webhook_secret)
    payload = _parse_event(await request.body())
    machine = SubscriptionStateMachine(session, clock=clock, publisher=publisher)
    return _response(await BillingEventProcessor(session, machine).apply(payload))


@router.post("/paypal", response_model=BillingWebhookResponse)
async def paypal_webhook(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    clock: Clock = Depends(get_clock),
    publisher: PlanChangePublisher = Depends(get_plan_publisher),
    webhook_secret: str | None = Header(default=None, alias="X-Billing-Webhook-Secret"),
) -> BillingWebhookResponse:
    _verify_secret(webhook_secret)
    payload = _parse_event(await request.body())
    machine = SubscriptionStateMachine(session, clock=clock, publisher=publisher)
    return _response(await PayPalEventProcessor(session, machine).apply(payload))