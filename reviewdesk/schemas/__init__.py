from reviewdesk.schemas.billing import (
    BillingWebhookResponse,
    EntitlementResponse,
    PlanResponse,
    ReconcileResponse,
)
from reviewdesk.schemas.subscription import GenerationResponse, SubscriptionResponse, UsageResponse
from reviewdesk.schemas.workspace import (
    DefaultWorkspaceResponse,
    GuardResponse,
    WorkspaceCreateRequest,
    WorkspaceSummary,
)

__all__ = [
    "BillingWebhookResponse",
    "EntitlementResponse",
    "PlanResponse",
    "ReconcileResponse",
    "GenerationResponse",
    "SubscriptionResponse",
    "UsageResponse",
    "DefaultWorkspaceResponse",
    "GuardResponse",
    "WorkspaceCreateRequest",
    "WorkspaceSummary",
]
