"""GET /health endpoint handler."""
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status

from portalbot.server.models import HealthResponse


def create_health_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK, tags=["status"])
    async def health_check(request: Request) -> HealthResponse:
        """Report whether the bot can act on the portal right now."""
        context = request.app.state.context
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        fresh = context.session.is_fresh()
        router = context.router
        return HealthResponse(
            status="healthy" if fresh or context.session.credentials is None else "degraded",
            session_fresh=fresh,
            pending_exchanges=len(context.coordinator.pending_identities()),
            active_flows=router.active_tasks if router is not None else 0,
            timestamp=timestamp,
            message=None if fresh else "No fresh portal session",
        )

    return router
