from __future__ import annotations

import enum


class Role(str, enum.Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @property
    def precedence(self) -> int:
        return ROLE_PRECEDENCE[self]


# Ascending order wins: an OWNER membership sorts before ADMIN, ADMIN before MEMBER.
ROLE_PRECEDENCE: dict[Role, int] = {
    Role.OWNER: 0,
    Role.ADMIN: 1,
    Role.MEMBER: 2,
}


class PlanTier(str, enum.Enum):
    FREE = "FREE"
    PRO = "PRO"
    AGENCY = "AGENCY"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    # Derived from the clock, never written to the subscriptions table.
    EXPIRED = "EXPIRED"


class SubscriptionEventType(str, enum.Enum):
    CREATED = "CREATED"
    UPGRADED = "UPGRADED"
    RENEWED = "RENEWED"
    PAST_DUE = "PAST_DUE"
    DOWNGRADED = "DOWNGRADED"
    CANCELLATION_RECORDED = "CANCELLATION_RECORDED"
