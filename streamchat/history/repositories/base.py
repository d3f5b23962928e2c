# streamchat/history/repositories/base.py
from __future__ import annotations

from typing import Protocol

from streamchat.history.models import Assistant, Conversation, StoredMessage


class ChatRepository(Protocol):
    """
    Interface for storing assistants, conversations and their messages.
    Relationships are Assistant 1-* Conversation 1-* Message with deletion
    restricted while children exist.
    """

    async def create_assistant(self, assistant: Assistant) -> Assistant:
        ...

    async def get_assistant(self, assistant_id: str) -> Assistant | None:
        ...

    async def delete_assistant(self, assistant_id: str) -> bool:
        """
        Delete an assistant. Returns False if it did not exist.
        Raises IntegrityViolationError while conversations reference it.
        """
        ...

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        """
        Store a conversation. Raises IntegrityViolationError if its assistant
        does not exist.
        """
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        ...

    async def list_conversations(
        self, assistant_id: str | None = None
    ) -> list[Conversation]:
        """
        Return conversations, most recently updated first, optionally for one
        assistant.
        """
        ...

    async def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation. Returns False if it did not exist.
        Raises IntegrityViolationError while messages reference it.
        """
        ...

    async def add_message(self, message: StoredMessage) -> StoredMessage:
        """
        Append a message and touch the conversation's ``updated_at``.
        Raises IntegrityViolationError if the conversation does not exist.
        """
        ...

    async def get_messages(
        self, conversation_id: str, limit: int | None = None
    ) -> list[StoredMessage]:
        """
        Return messages in chronological order. If limit is provided, only the
        most recent `limit` messages are returned.
        """
        ...
