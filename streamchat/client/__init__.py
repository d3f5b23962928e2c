"""Stream client: conversation state and the incremental read loop."""

from .session import ChatSession, ConversationMessage, TurnOutcome

__all__ = ["ChatSession", "ConversationMessage", "TurnOutcome"]
