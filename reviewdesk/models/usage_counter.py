from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from reviewdesk.models.base import TimestampedBase


class UsageCounter(TimestampedBase):
    __tablename__ = "usage_counters"
    __table_args__ = (
        UniqueConstraint("workspace_id", "cycle_start", name="uq_usage_counters_workspace_cycle"),
    )

    workspace_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cycle_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    generations_used: Mapped[int] = mapped_column(nullable=False, default=0)
