from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from reviewdesk.models import (
    Base,
    PlanTier,
    Role,
    Subscription,
    SubscriptionStatus,
    User,
    Workspace,
    WorkspaceMembership,
)


class Factory:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def user(self, email: str | None = None) -> User:
        user = User(email=email or f"user-{uuid4().hex[:8]}@example.test", name="Test User")
        self.session.add(user)
        await self.session.commit()
        return user

    async def workspace(
        self,
        owner: User | None = None,
        *,
        name: str = "Workspace",
        role: Role = Role.OWNER,
        created_at: datetime | None = None,
    ) -> Workspace:
        workspace = Workspace(name=name)
        if created_at is not None:
            workspace.created_at = created_at
        self.session.add(workspace)
        await self.session.flush()
        self.session.add(
            Subscription(
                workspace_id=workspace.id,
                plan_tier=PlanTier.FREE,
                status=SubscriptionStatus.ACTIVE,
            )
        )
        if owner is not None:
            self.session.add(WorkspaceMembership(user_id=owner.id, workspace_id=workspace.id, role=role))
        await self.session.commit()
        return workspace

    async def add_member(self, workspace: Workspace, user: User, role: Role) -> WorkspaceMembership:
        membership = WorkspaceMembership(user_id=user.id, workspace_id=workspace.id, role=role)
        self.session.add(membership)
        await self.session.commit()
        return membership

    async def set_plan(
        self,
        workspace_id: UUID,
        tier: PlanTier,
        period_end: datetime | None,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    ) -> None:
        await self.session.execute(
            update(Subscription)
            .where(Subscription.workspace_id == workspace_id)
            .values(plan_tier=tier, status=status, current_period_end=period_end)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()


@pytest_asyncio.fixture
async def engine(tmp_path):  # noqa: ANN001
    # File-backed so that separate sessions get separate connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'reviewdesk.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:  # noqa: ANN001
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session(session_factory: async_sessionmaker[AsyncSession]):
    async with session_factory() as session:
        yield session


@pytest.fixture
def factory(session: AsyncSession) -> Factory:
    return Factory(session)
