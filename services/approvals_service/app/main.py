"""FastAPI application for the Approvals Service."""

from fastapi import FastAPI
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.approvals_service.routers import learner_router, review_router


def create_app() -> FastAPI:
    """Create and configure the Approvals Service FastAPI app."""
    app = FastAPI(
        title="Approvals Service",
        version="0.1.0",
        description="Request, review and notify workflow for learner resources.",
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "approvals"}

    # Reviewer routes first so /approvals/admin/... never matches /{kind}/mine.
    app.include_router(review_router)
    app.include_router(learner_router)

    return app


app = create_app()
