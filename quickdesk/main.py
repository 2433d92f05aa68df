"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from quickdesk.core.config import settings
from quickdesk.core.errors import LockoutError, QuickdeskError
from quickdesk.core.structured_logging import RequestIdMiddleware, build_log_context, setup_logging
from quickdesk.db.session import engine

setup_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,  # 10% of requests for performance monitoring
        send_default_pii=False,  # Don't send PII to Sentry
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from quickdesk.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Quickdesk API",
    description="Multi-tenant helpdesk: e-mail tickets, SLA deadlines, agent licensing",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(RequestIdMiddleware)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)


@app.exception_handler(QuickdeskError)
async def quickdesk_error_handler(request: Request, exc: QuickdeskError):
    """Service errors become ``{"success": false, "error": ...}`` with a matching status."""
    context = build_log_context(
        request_id=getattr(request.state, "request_id", None),
        route=request.url.path,
        method=request.method,
    )
    logger.info("%s: %s", exc.code, exc.message, extra=context)
    content = {"success": False, "error": exc.message, "code": exc.code}
    missing = getattr(exc, "missing", None)
    if missing:
        content["missing"] = missing
    if isinstance(exc, LockoutError):
        content["locked_until"] = exc.locked_until.isoformat()
    return JSONResponse(status_code=exc.http_status, content=content)


# ============================================================================
# Routers
# ============================================================================

from quickdesk.routers import (
    auth,
    companies,
    internal,
    members,
    settings as settings_router,
    subscription,
    tickets,
    webhooks,
)

app.include_router(auth.router, prefix="/auth", tags=["auth"])
app.include_router(tickets.router)
app.include_router(members.router)
app.include_router(companies.router)
app.include_router(subscription.router)
app.include_router(settings_router.router)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Internal scheduled endpoints (cron jobs, X-Internal-Secret)
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
