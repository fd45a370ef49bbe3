"""Middleware."""
from portalbot.server.middleware.logging import RequestLoggingMiddleware, sanitize_dict

__all__ = ["RequestLoggingMiddleware", "sanitize_dict"]
