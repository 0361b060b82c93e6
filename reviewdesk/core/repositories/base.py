from __future__ import annotations

from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from reviewdesk.core.db import dialect_name
from reviewdesk.models.base import TimestampedBase

ModelT = TypeVar("ModelT", bound=TimestampedBase)


class WorkspaceScopedRepository(Generic[ModelT]):
    """Repository whose every query is pinned to one workspace."""

    def __init__(self, session: AsyncSession, model: type[ModelT], workspace_id: UUID) -> None:
        self.session = session
        self.model = model
        self.workspace_id = workspace_id

    def _scoped_select(self) -> Select[tuple[ModelT]]:
        return select(self.model).where(self.model.workspace_id == self.workspace_id)

    async def _insert_ignoring_conflicts(self, index_elements: list[str], **values: Any) -> None:
        payload = dict(values)
        payload.setdefault("workspace_id", self.workspace_id)
        insert = sqlite_insert if dialect_name(self.session) == "sqlite" else pg_insert
        await self.session.execute(
            insert(self.model).values(**payload).on_conflict_do_nothing(index_elements=index_elements)
        )
