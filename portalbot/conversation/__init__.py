"""Synchronous-looking multi-step dialogues over the shared chat stream."""

from .coordinator import ConversationCoordinator, OperatorChannel

__all__ = ["ConversationCoordinator", "OperatorChannel"]
