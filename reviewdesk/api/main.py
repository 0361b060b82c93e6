import logging

from fastapi import FastAPI, Request, status
from fastapi.exception_handlers import http_exception_handler
from starlette.responses import JSONResponse, RedirectResponse, Response

from reviewdesk.api.routes.billing import router as billing_router
from reviewdesk.api.routes.subscriptions import router as subscriptions_router
from reviewdesk.api.routes.webhooks import router as webhooks_router
from reviewdesk.api.routes.workspaces import router as workspaces_router
from reviewdesk.core.config import settings
from reviewdesk.core.errors import Unauthenticated

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="Reviewdesk")
app.include_router(workspaces_router, prefix="/api/v1")
app.include_router(subscriptions_router, prefix="/api/v1")
app.include_router(billing_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.exception_handler(Unauthenticated)
async def unauthenticated_handler(request: Request, exc: Unauthenticated) -> Response:
    if settings.login_url and "text/html" in request.headers.get("accept", ""):
        return RedirectResponse(settings.login_url, status_code=status.HTTP_303_SEE_OTHER)
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
