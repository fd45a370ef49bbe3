"""Wire models of the chat bridge webhook."""
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field

from portalbot.chat.messages import InboundMessage


class InboundChatRequest(BaseModel):
    """Payload POSTed by the chat bridge for every received message."""

    sender: Annotated[str, Field(min_length=1, description="Address the message came from")]
    chat_id: Annotated[str, Field(min_length=1, description="Chat to answer in")]
    text: Annotated[str, Field(description="Message body")] = ""
    timestamp: Annotated[float, Field(ge=0, description="Unix seconds")]
    from_me: bool = False
    to: Optional[str] = None
    author: Optional[str] = None
    group_name: Optional[str] = None

    def to_message(self) -> InboundMessage:
        return InboundMessage(
            sender=self.sender,
            chat_id=self.chat_id,
            text=self.text,
            timestamp=self.timestamp,
            from_me=self.from_me,
            to=self.to,
            author=self.author,
            group_name=self.group_name,
        )


class InboundAcceptedResponse(BaseModel):
    status: Annotated[Literal["ignored", "reply", "dispatched"], Field()]


class HealthResponse(BaseModel):
    status: Annotated[Literal["healthy", "degraded"], Field()]
    session_fresh: bool
    pending_exchanges: int
    active_flows: int
    timestamp: Annotated[str, Field()]
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    code: Annotated[str, Field()]
    message: Annotated[str, Field()]
    details: Optional[dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
