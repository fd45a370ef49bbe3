"""Exception types shared across portalbot."""
from typing import Optional


class PortalBotError(Exception):
    """Base exception for all portalbot errors."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500


class ConfigError(PortalBotError):
    """Configuration is missing or invalid."""

    error_code = "CONFIG_ERROR"


class AuthenticationError(PortalBotError):
    """Portal credentials could not be obtained."""

    error_code = "AUTHENTICATION_FAILED"
    status_code = 502


class LoginError(AuthenticationError):
    """A single login handshake attempt failed."""


class RemoteOperationError(PortalBotError):
    """A portal call returned a non-OK status or a body we cannot read."""

    error_code = "REMOTE_OPERATION_FAILED"
    status_code = 502

    def __init__(self, message: str, operation: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.operation = operation
        self.http_status = status_code


class ConversationError(PortalBotError):
    """Base class for reply correlation problems."""

    error_code = "CONVERSATION_ERROR"


class CorrelationError(ConversationError):
    """A reply arrived with no matching pending exchange."""


class ExchangePendingError(ConversationError):
    """An identity already has an outstanding exchange."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"Exchange already pending for {identity}")
        self.identity = identity


class ReplyTimeoutError(ConversationError):
    """No reply arrived before the exchange timeout."""

    def __init__(self, identity: str, timeout: float) -> None:
        super().__init__(f"No reply from {identity} within {timeout:g}s")
        self.identity = identity
        self.timeout = timeout


class ValidationError(PortalBotError):
    """Operator input failed a precondition."""

    error_code = "INVALID_INPUT"
    status_code = 400


class ReferenceDataError(PortalBotError):
    """A reference spreadsheet could not be read."""
