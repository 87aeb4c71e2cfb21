"""Bounded per-conversation message history."""

import logging
from typing import Dict, List

from .models import ChatMessage
from .utils import KeyedLocks

logger = logging.getLogger(__name__)


class HistoryManager:
    """
    Keep the most recent messages of each conversation.

    Every update appends a user/assistant pair and then drops whole pairs
    from the front until the conversation fits ``max_history_length``.
    """

    def __init__(self, max_history_length: int = 20):
        self.max_history_length = max_history_length
        self._histories: Dict[str, List[ChatMessage]] = {}
        self._locks = KeyedLocks()

    def get(self, conversation_id: str) -> List[ChatMessage]:
        """
        Return a snapshot of the conversation's messages.

        An empty conversation is registered on first access.
        """
        with self._locks(conversation_id):
            history = self._histories.setdefault(conversation_id, [])
            return list(history)

    def update(
        self,
        conversation_id: str,
        user_message: ChatMessage,
        assistant_message: ChatMessage,
    ) -> None:
        with self._locks(conversation_id):
            history = self._histories.setdefault(conversation_id, [])
            history.extend((user_message, assistant_message))
            dropped = 0
            while len(history) > self.max_history_length:
                del history[:2]
                dropped += 2
        if dropped:
            logger.debug(
                "pruned conversation history",
                extra={"conversation_id": conversation_id, "dropped": dropped},
            )

    def clear(self, conversation_id: str) -> None:
        with self._locks(conversation_id):
            self._histories.pop(conversation_id, None)

    def has(self, conversation_id: str) -> bool:
        return bool(self._histories.get(conversation_id))

    def count(self) -> int:
        return len(self._histories)

    def conversation_ids(self) -> List[str]:
        return list(self._histories)

    def clear_all(self) -> None:
        self._histories.clear()
