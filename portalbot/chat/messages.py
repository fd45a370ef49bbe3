"""Inbound chat message and operator identity derivation."""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class InboundMessage:
    """A message delivered by the chat bridge.

    Attributes:
        sender: Address the message came from (the chat for group messages).
        chat_id: Chat to answer in.
        text: Message body.
        timestamp: Unix seconds at which the message was sent.
        from_me: True when the bot's own account sent the message.
        to: Peer address, used as identity for self-sent messages.
        author: Group participant who wrote the message.
        group_name: Name of the group chat, if any.
    """

    sender: str
    chat_id: str
    text: str
    timestamp: float
    from_me: bool = False
    to: Optional[str] = None
    author: Optional[str] = None
    group_name: Optional[str] = None

    @property
    def identity(self) -> str:
        return operator_identity(self)

    @property
    def body(self) -> str:
        return self.text.strip()


def operator_identity(message: InboundMessage) -> str:
    """Stable key for the participant a message belongs to."""
    if message.from_me and message.to:
        return message.to
    return message.author or message.sender
