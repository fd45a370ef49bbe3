"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from portalbot import __version__
from portalbot.chat.transport import WebhookChatTransport
from portalbot.config import AppConfig, load_config
from portalbot.context import AppContext
from portalbot.errors import PortalBotError
from portalbot.server.middleware.logging import RequestLoggingMiddleware
from portalbot.server.models import ErrorDetail, ErrorResponse
from portalbot.server.routes.chat import create_chat_router
from portalbot.server.routes.health import create_health_router

logger = logging.getLogger(__name__)

ContextFactory = Callable[[AppConfig], AppContext]


def _default_context(config: AppConfig) -> AppContext:
    transport = WebhookChatTransport(
        config.chat.outbound_url, secret=config.chat.secret, timeout=config.chat.send_timeout,
    )
    return AppContext(config, transport)


def create_app(config: Optional[AppConfig] = None, context_factory: Optional[ContextFactory] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    When called without arguments (e.g. via uvicorn --factory), loads
    configuration from ``PORTALBOT_CONFIG`` and the environment.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    if config is None:
        config = load_config()
    factory = context_factory or _default_context

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with factory(config) as context:
            app.state.context = context
            logger.info("Portal bot ready, portal=%s", config.portal.base_url)
            yield
        logger.info("Portal bot stopped")

    app = FastAPI(
        title="Portal Bot",
        description="Chat-driven portal administration",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(PortalBotError, _portalbot_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(create_chat_router(config.chat.secret))
    app.include_router(create_health_router())
    return app


async def _portalbot_error_handler(request: Request, exc: PortalBotError) -> JSONResponse:
    response = ErrorResponse(error=ErrorDetail(code=exc.error_code, message=str(exc)))
    return JSONResponse(status_code=exc.status_code, content=response.model_dump())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    response = ErrorResponse(error=ErrorDetail(
        code="INVALID_FORMAT", message="Request validation failed",
        details={"validation_errors": jsonable_errors(exc)},
    ))
    return JSONResponse(status_code=422, content=response.model_dump())


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()]
