from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reviewdesk.models.base import TimestampedBase
from reviewdesk.models.enums import PlanTier, SubscriptionEventType, SubscriptionStatus


class Subscription(TimestampedBase):
    __tablename__ = "subscriptions"

    workspace_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    plan_tier: Mapped[PlanTier] = mapped_column(
        Enum(PlanTier, name="plan_tier", native_enum=False, length=20),
        nullable=False,
        default=PlanTier.FREE,
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, name="subscription_status", native_enum=False, length=20),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    external_provider_ref: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)


class SubscriptionEvent(TimestampedBase):
    __tablename__ = "subscription_events"

    workspace_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[SubscriptionEventType] = mapped_column(
        Enum(SubscriptionEventType, name="subscription_event_type", native_enum=False, length=40),
        nullable=False,
    )
    from_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    to_tier: Mapped[str | None] = mapped_column(String(20), nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
