from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.repositories.base import WorkspaceScopedRepository
from reviewdesk.models.base import utcnow
from reviewdesk.models.usage_counter import UsageCounter


class UsageCounterRepository(WorkspaceScopedRepository[UsageCounter]):
    def __init__(self, session: AsyncSession, workspace_id: UUID) -> None:
        super().__init__(session=session, model=UsageCounter, workspace_id=workspace_id)

    async def get_for_cycle(self, cycle_start: datetime) -> UsageCounter | None:
        result = await self.session.execute(
            self._scoped_select()
            .where(UsageCounter.cycle_start == cycle_start)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def ensure_cycle(self, cycle_start: datetime) -> None:
        await self._insert_ignoring_conflicts(
            ["workspace_id", "cycle_start"],
            cycle_start=cycle_start,
            generations_used=0,
        )

    async def increment_within_limit(self, cycle_start: datetime, amount: int, limit: int | None) -> bool:
        """Add ``amount`` in one conditional UPDATE; ``False`` means the limit would be exceeded."""
        stmt = (
            update(UsageCounter)
            .where(UsageCounter.workspace_id == self.workspace_id)
            .where(UsageCounter.cycle_start == cycle_start)
            .values(generations_used=UsageCounter.generations_used + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if limit is not None:
            stmt = stmt.where(UsageCounter.generations_used + amount <= limit)

        result = await self.session.execute(stmt)
        return (result.rowcount or 0) == 1
