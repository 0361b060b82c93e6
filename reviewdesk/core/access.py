from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from reviewdesk.core.db import get_db_session
from reviewdesk.core.errors import Forbidden
from reviewdesk.core.identity import Principal, require_principal
from reviewdesk.core.repositories.memberships import MembershipDirectory
from reviewdesk.models.enums import Role
from reviewdesk.models.membership import WorkspaceMembership

logger = logging.getLogger(__name__)

ANY_ROLE: frozenset[Role] = frozenset(Role)
MANAGER_ROLES: frozenset[Role] = frozenset({Role.OWNER, Role.ADMIN})


@dataclass(slots=True)
class WorkspaceAccess:
    principal: Principal
    membership: WorkspaceMembership

    @property
    def workspace_id(self) -> UUID:
        return self.membership.workspace_id

    @property
    def role(self) -> Role:
        return Role(self.membership.role)


async def assert_access(
    session: AsyncSession,
    user_id: UUID,
    workspace_id: UUID,
    allowed_roles: Collection[Role],
) -> WorkspaceMembership:
    # Always read the persisted membership: a demotion or removal applies to the next request.
    membership = await MembershipDirectory(session).membership_of(user_id, workspace_id)
    if membership is None or Role(membership.role) not in allowed_roles:
        logger.info("Workspace access denied user=%s workspace=%s", user_id, workspace_id)
        raise Forbidden()
    return membership


def require_workspace_role(*roles: Role) -> Callable[..., Awaitable[WorkspaceAccess]]:
    allowed = frozenset(roles) or ANY_ROLE

    async def _dependency(
        workspace_id: UUID,
        principal: Principal = Depends(require_principal),
        session: AsyncSession = Depends(get_db_session),
    ) -> WorkspaceAccess:
        membership = await assert_access(session, principal.user_id, workspace_id, allowed)
        return WorkspaceAccess(principal=principal, membership=membership)

    return _dependency


require_any_member = require_workspace_role(*ANY_ROLE)
require_workspace_manager = require_workspace_role(*MANAGER_ROLES)
