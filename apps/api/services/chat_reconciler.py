"""
Chat Reconciler

Append-only team chat history, deduplicated by message id.

Messages keep the order they were received in; producer timestamps are not
used for sorting. Only the most recent `limit` messages are persisted. The
live history may run past the limit until the next `trim()`.
"""
import logging
from typing import Iterable, List, Optional, Set

from core.config import settings
from schemas import ChatMessage

logger = logging.getLogger(__name__)


class ChatReconciler:

    def __init__(self, messages: Optional[Iterable[ChatMessage]] = None, limit: Optional[int] = None):
        self.limit = settings.CHAT_HISTORY_LIMIT if limit is None else limit
        self._messages: List[ChatMessage] = []
        self._ids: Set[str] = set()
        for message in messages or []:
            self.merge(message)

    def merge(self, message: ChatMessage) -> bool:
        """Append a message unless its id is already in the history."""
        if message.id in self._ids:
            logger.debug(f"Duplicate chat message ignored: {message.id}")
            return False
        self._messages.append(message)
        self._ids.add(message.id)
        return True

    def history(self) -> List[ChatMessage]:
        return list(self._messages)

    def window(self) -> List[ChatMessage]:
        """The most recent `limit` messages, the part that gets persisted."""
        return self._messages[-self.limit:]

    def trim(self) -> int:
        """Drop messages older than the window. Returns how many were dropped."""
        dropped = len(self._messages) - self.limit
        if dropped <= 0:
            return 0
        self._messages = self._messages[dropped:]
        self._ids = {message.id for message in self._messages}
        return dropped

    def to_json(self) -> list:
        return [message.to_wire() for message in self.window()]

    @classmethod
    def from_json(cls, data: Optional[list], limit: Optional[int] = None) -> "ChatReconciler":
        return cls((ChatMessage.model_validate(item) for item in data or []), limit=limit)

    def __len__(self) -> int:
        return len(self._messages)
