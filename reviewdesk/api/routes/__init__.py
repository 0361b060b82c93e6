from reviewdesk.api.routes.billing import router as billing_router
from reviewdesk.api.routes.subscriptions import router as subscriptions_router
from reviewdesk.api.routes.webhooks import router as webhooks_router
from reviewdesk.api.routes.workspaces import router as workspaces_router

__all__ = [
    "billing_router",
    "subscriptions_router",
    "webhooks_router",
    "workspaces_router",
]
