"""Request logging middleware."""
import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("portalbot.server")
SENSITIVE_FIELDS = frozenset({"password", "secret", "cookie", "x-bridge-secret", "authorization"})
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs each bridge request with its status and duration.

    Health checks are logged at debug level so a polling bridge does not
    flood the log.
    """

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.log(
            level, "%s %s status=%d duration=%.2fms",
            request.method, request.url.path, response.status_code, elapsed_ms,
        )
        return response


def sanitize_dict(data: dict) -> dict:
    """Redact passwords, secrets and cookie values before logging."""
    result = {}
    for key, value in data.items():
        lower_key = key.lower()
        if lower_key in SENSITIVE_FIELDS or lower_key.endswith("_cookie"):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value)
        else:
            result[key] = value
    return result
