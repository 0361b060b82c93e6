from reviewdesk.core.repositories.base import WorkspaceScopedRepository
from reviewdesk.core.repositories.memberships import MembershipDirectory
from reviewdesk.core.repositories.subscriptions import SubscriptionRepository
from reviewdesk.core.repositories.usage import UsageCounterRepository

__all__ = [
    "WorkspaceScopedRepository",
    "MembershipDirectory",
    "SubscriptionRepository",
    "UsageCounterRepository",
]
