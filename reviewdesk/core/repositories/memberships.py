from __future__ import annotations

from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import contains_eager, joinedload
from sqlalchemy.sql.elements import Case

from reviewdesk.models.enums import ROLE_PRECEDENCE
from reviewdesk.models.membership import WorkspaceMembership
from reviewdesk.models.workspace import Workspace


def role_precedence_order() -> Case[int]:
    return case(
        ROLE_PRECEDENCE,
        value=WorkspaceMembership.role,
        else_=len(ROLE_PRECEDENCE),
    )


class MembershipDirectory:
    """Read-only view of who holds which role in which workspace."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def membership_of(self, user_id: UUID, workspace_id: UUID) -> WorkspaceMembership | None:
        return await self.session.scalar(
            select(WorkspaceMembership)
            .options(joinedload(WorkspaceMembership.workspace))
            .execution_options(populate_existing=True)
            .where(WorkspaceMembership.user_id == user_id)
            .where(WorkspaceMembership.workspace_id == workspace_id)
        )

    async def memberships_for(self, user_id: UUID) -> list[WorkspaceMembership]:
        stmt = (
            select(WorkspaceMembership)
            .join(WorkspaceMembership.workspace)
            .options(contains_eager(WorkspaceMembership.workspace))
            .where(WorkspaceMembership.user_id == user_id)
            .order_by(role_precedence_order(), Workspace.created_at, Workspace.id)
        )
        return list((await self.session.scalars(stmt)).all())

    async def default_workspace_id(self, user_id: UUID) -> UUID | None:
        memberships = await self.memberships_for(user_id)
        return memberships[0].workspace_id if memberships else None

    async def count_for(self, user_id: UUID) -> int:
        return int(
            await self.session.scalar(
                select(func.count(WorkspaceMembership.id)).where(WorkspaceMembership.user_id == user_id)
            )
            or 0
        )
