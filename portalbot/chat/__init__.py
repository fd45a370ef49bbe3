"""Chat bridge: inbound message model and outbound transports."""

from .messages import InboundMessage, operator_identity
from .transport import ChatTransport, ConsoleChatTransport, WebhookChatTransport

__all__ = ["InboundMessage", "operator_identity", "ChatTransport", "ConsoleChatTransport", "WebhookChatTransport"]
