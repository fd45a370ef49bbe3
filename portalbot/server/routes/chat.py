"""POST /chat/inbound endpoint for the chat bridge."""
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request, status
from fastapi.responses import JSONResponse

from portalbot.server.middleware.logging import sanitize_dict
from portalbot.server.models import ErrorDetail, ErrorResponse, InboundAcceptedResponse, InboundChatRequest

logger = logging.getLogger(__name__)


def create_chat_router(bridge_secret: str = "") -> APIRouter:
    """Create the inbound chat router.

    Args:
        bridge_secret: Shared secret expected in ``X-Bridge-Secret``.
            Empty string disables the check.
    """
    router = APIRouter()

    @router.post(
        "/chat/inbound",
        response_model=InboundAcceptedResponse,
        status_code=status.HTTP_202_ACCEPTED,
        tags=["chat"],
    )
    async def receive_message(
        request: Request,
        body: InboundChatRequest,
        x_bridge_secret: Optional[str] = Header(default=None),
    ) -> InboundAcceptedResponse | JSONResponse:
        """Hand the message to the command router and return at once."""
        if bridge_secret and x_bridge_secret != bridge_secret:
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content=ErrorResponse(error=ErrorDetail(
                    code="NOT_AUTHORIZED", message="Invalid or missing X-Bridge-Secret header",
                )).model_dump(),
            )

        logger.debug("Inbound payload: %s", sanitize_dict(body.model_dump()))
        router_ = request.app.state.context.router
        outcome = router_.route(body.to_message())
        return InboundAcceptedResponse(status=outcome.value)

    return router
