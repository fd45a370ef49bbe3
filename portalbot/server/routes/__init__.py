"""Route factories."""
from portalbot.server.routes.chat import create_chat_router
from portalbot.server.routes.health import create_health_router

__all__ = ["create_chat_router", "create_health_router"]
