from reviewdesk.models.base import Base, TimestampedBase
from reviewdesk.models.enums import PlanTier, Role, SubscriptionEventType, SubscriptionStatus
from reviewdesk.models.membership import WorkspaceMembership
from reviewdesk.models.subscription import Subscription, SubscriptionEvent
from reviewdesk.models.usage_counter import UsageCounter
from reviewdesk.models.user import User
from reviewdesk.models.workspace import Workspace

__all__ = [
    "Base",
    "TimestampedBase",
    "PlanTier",
    "Role",
    "SubscriptionEventType",
    "SubscriptionStatus",
    "User",
    "Workspace",
    "WorkspaceMembership",
    "Subscription",
    "SubscriptionEvent",
    "UsageCounter",
]
