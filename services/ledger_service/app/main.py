"""FastAPI application for the Ledger Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.ledger_service.routers import (
    admin_router,
    internal_router,
    ledger_router,
)
from services.ledger_service.services.errors import LedgerError
from slowapi.errors import RateLimitExceeded


def create_app() -> FastAPI:
    """Create and configure the Ledger Service FastAPI app."""
    app = FastAPI(
        title="Ledger Service",
        version="0.1.0",
        description="Wallet ledger, referral rewards and payout reconciliation.",
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    add_observability_middleware(app)
    add_exception_handlers(app, LedgerError)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "ledger"}

    # Member-facing routes
    # Gateway: /api/v1/ledger/{path} → /ledger/{path}
    app.include_router(ledger_router)

    # Admin routes
    # Gateway: /api/v1/admin/ledger/{path} → /admin/ledger/{path}
    app.include_router(admin_router)

    # Internal service-to-service routes (not proxied by gateway)
    app.include_router(internal_router)

    return app


app = create_app()
